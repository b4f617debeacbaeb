# Overview: Records payments against single installments of a sale.

"""
Settlement Engine

WHY: Customers pay installment by installment, sometimes in parts. The
operator edits the running total paid on one installment; the paid flag is
derived from it on read.

DESIGN PRINCIPLES:
- Absolute overwrite: the amount replaces amount_paid, it is not added to it.
  Recording the same amount twice leaves the installment unchanged.
- Negative amounts are clamped to zero.
- Narrow write: only the target installment row is updated, guarded by its
  version_id, so two sessions settling different installments of the same
  sale never clobber each other.
"""

from __future__ import annotations

import logging

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Sale
from .concurrency import run_with_retry
from .money import clamp_non_negative

logger = logging.getLogger(__name__)


def record_payment(
    sale_id: str,
    installment_id: str,
    amount_cents: int,
    *,
    expected_version: int | None = None,
) -> Sale:
    """
    Set the amount paid on one installment of a sale.

    Args:
        sale_id: Sale owning the installment
        installment_id: Installment being settled
        amount_cents: New running total paid (absolute, not a delta)
        expected_version: Installment version the caller last saw (optional)

    Returns:
        The sale, with only that installment changed

    Raises:
        NotFoundError: sale or installment does not exist
        ConflictError: expected_version no longer matches
    """
    amount = clamp_non_negative(int(amount_cents))

    def _op():
        sale = db.session.get(Sale, sale_id)
        if not sale:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        installment = sale.find_installment(installment_id)
        if installment is None:
            raise NotFoundError(
                "Installment not found",
                details={"sale_id": sale_id, "installment_id": installment_id},
            )

        if expected_version is not None and expected_version != installment.version_id:
            raise ConflictError(
                "Installment was changed by another session",
                details={"expected_version": expected_version, "current_version": installment.version_id},
            )

        if installment.amount_paid_cents != amount:
            installment.amount_paid_cents = amount
            db.session.commit()
            logger.info(
                "Installment %s/%d of sale %s set to %d cents paid (paid=%s)",
                installment.number, len(sale.installments), sale.id, amount, installment.paid,
            )
        return sale

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

