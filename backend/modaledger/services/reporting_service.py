# Overview: Dashboard metrics derived from the sale ledger.

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Iterable

from ..extensions import db
from ..models import Customer, Installment, Product, Sale
from modaledger.time_utils import today as current_date
from .money import OVERDUE_TOLERANCE_CENTS


@dataclass(frozen=True)
class LedgerSummary:
    total_revenue_cents: int
    total_paid_cents: int
    total_receivable_cents: int
    overdue_count: int

    def to_dict(self) -> dict:
        return asdict(self)


def compute_summary(sales: Iterable, today: date | None = None) -> LedgerSummary:
    """
    Scan every installment of every sale.

    received   = sum of amount paid (missing counts as 0)
    receivable = sum of max(0, value - paid)
    overdue    = installments past due with more than 0.10 still open

    Overpayment on one installment does not offset another: receivable is
    floored per installment.
    """
    as_of = today or current_date()

    revenue = 0
    paid_total = 0
    receivable = 0
    overdue = 0

    for sale in sales:
        revenue += sale.total_cents
        for inst in sale.installments:
            paid = inst.amount_paid_cents or 0
            remaining = max(0, inst.value_cents - paid)
            paid_total += paid
            receivable += remaining
            if remaining > OVERDUE_TOLERANCE_CENTS and inst.due_date < as_of:
                overdue += 1

    return LedgerSummary(
        total_revenue_cents=revenue,
        total_paid_cents=paid_total,
        total_receivable_cents=receivable,
        overdue_count=overdue,
    )


def dashboard_summary(today: date | None = None) -> dict:
    sales = db.session.query(Sale).all()
    summary = compute_summary(sales, today=today)

    counts = {
        "products": db.session.query(Product).count(),
        "customers": db.session.query(Customer).count(),
        "sales": len(sales),
    }
    return {
        "summary": summary.to_dict(),
        "chart": [
            {"name": "received", "value_cents": summary.total_paid_cents},
            {"name": "receivable", "value_cents": summary.total_receivable_cents},
        ],
        "counts": counts,
        "is_empty": not any(counts.values()),
    }


def overdue_installments(today: date | None = None) -> list[dict]:
    """Open installments past their due date, oldest first."""
    as_of = today or current_date()
    rows = (
        db.session.query(Installment, Sale)
        .join(Sale, Sale.id == Installment.sale_id)
        .filter(Installment.due_date < as_of)
        .filter(Installment.value_cents - Installment.amount_paid_cents > OVERDUE_TOLERANCE_CENTS)
        .order_by(Installment.due_date.asc(), Sale.customer_name.asc(), Installment.number.asc())
        .all()
    )
    return [
        {
            "sale_id": sale.id,
            "customer_id": sale.customer_id,
            "customer_name": sale.customer_name,
            "installment_id": inst.id,
            "number": inst.number,
            "due_date": inst.due_date.isoformat(),
            "value_cents": inst.value_cents,
            "amount_paid_cents": inst.amount_paid_cents,
            "remaining_cents": inst.remaining_cents,
            "days_overdue": (as_of - inst.due_date).days,
        }
        for inst, sale in rows
    ]


def sale_balance(sale: Sale) -> dict:
    return {
        "sale_id": sale.id,
        "total_cents": sale.total_cents,
        "paid_cents": sale.paid_cents,
        "remaining_cents": sale.remaining_cents,
        "is_fully_paid": sale.is_fully_paid,
        "open_installments": sum(1 for inst in sale.installments if not inst.paid),
    }
