# Overview: Detects and corrects ledger data that disagrees with its derived values.

"""
Integrity checks

Two kinds of drift are recognized:
- an installment whose stored `paid` flag (only present in backup
  documents) disagrees with its amount paid; the flag is dropped and the
  computed property takes over
- a sale whose installment values do not add up to its total (more than
  1 cent apart); the last installment absorbs the difference

Issues are reported as IntegrityError values and logged as warnings. They
are never raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import IntegrityError
from ..extensions import db
from ..models import Sale
from .installment_service import build_installments
from .money import is_settled

logger = logging.getLogger(__name__)

SUM_TOLERANCE_CENTS = 1


@dataclass
class IntegrityReport:
    checked_sales: int = 0
    issues: list[IntegrityError] = field(default_factory=list)
    migrated_installments: int = 0

    def add(self, message: str, **details) -> None:
        issue = IntegrityError(message, details=details)
        logger.warning("Integrity issue: %s %s", issue, details)
        self.issues.append(issue)

    def to_dict(self) -> dict:
        return {
            "checked_sales": self.checked_sales,
            "migrated_installments": self.migrated_installments,
            "issues": [{"message": str(i), **i.details} for i in self.issues],
        }


def repair_sale_document(doc: dict, report: IntegrityReport) -> dict:
    """
    Check one sale document (snake_case, cents) in place.

    Installments may carry a legacy `paid` flag and no `amount_paid_cents`;
    those are migrated to amount_paid = value when paid, else 0.
    """
    report.checked_sales += 1
    sale_id = doc.get("id")
    installments = doc.get("installments") or []

    for inst in installments:
        flag = inst.pop("paid", None)
        if inst.get("amount_paid_cents") is None:
            inst["amount_paid_cents"] = inst["value_cents"] if flag else 0
            report.migrated_installments += 1
            continue
        if flag is not None and bool(flag) != is_settled(inst["amount_paid_cents"], inst["value_cents"]):
            report.add(
                "Stored paid flag disagrees with amount paid",
                sale_id=sale_id,
                installment_id=inst.get("id"),
                stored_paid=bool(flag),
                amount_paid_cents=inst["amount_paid_cents"],
                value_cents=inst["value_cents"],
            )

    _absorb_divergence(
        sale_id,
        doc.get("total_cents") or 0,
        installments,
        get_value=lambda inst: inst["value_cents"],
        set_value=lambda inst, v: inst.__setitem__("value_cents", v),
        report=report,
    )
    return doc


def _absorb_divergence(sale_id, total_cents: int, installments, *, get_value, set_value, report: IntegrityReport, fix: bool = True) -> bool:
    if not installments:
        return False
    scheduled = sum(get_value(inst) for inst in installments)
    divergence = total_cents - scheduled
    if abs(divergence) <= SUM_TOLERANCE_CENTS:
        return False

    last = installments[-1]
    report.add(
        "Installment values do not add up to the sale total",
        sale_id=sale_id,
        total_cents=total_cents,
        scheduled_cents=scheduled,
    )
    if not fix:
        return False
    set_value(last, max(0, get_value(last) + divergence))
    return True


def check_ledger(*, fix: bool = True) -> IntegrityReport:
    """Scan stored sales; with fix=True corrections are committed."""
    report = IntegrityReport()
    changed = False

    for sale in db.session.query(Sale).order_by(Sale.date.asc()).all():
        report.checked_sales += 1
        if not sale.installments:
            report.add("Sale has no installments", sale_id=sale.id, total_cents=sale.total_cents)
            if fix:
                sale.installments = build_installments(sale.total_cents, 1, sale.date.date())
                changed = True
            continue

        changed |= _absorb_divergence(
            sale.id,
            sale.total_cents,
            list(sale.installments),
            get_value=lambda inst: inst.value_cents,
            set_value=lambda inst, v: setattr(inst, "value_cents", v),
            report=report,
            fix=fix,
        )

    if changed:
        db.session.commit()
        logger.info("Integrity check corrected %d issue(s)", len(report.issues))
    else:
        db.session.rollback()
    return report
