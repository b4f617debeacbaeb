# Overview: Splits a sale total into a monthly installment schedule.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ..errors import ValidationError
from ..models import Installment
from modaledger.time_utils import add_months


@dataclass(frozen=True)
class InstallmentPlan:
    number: int
    due_date: date
    value_cents: int

    def to_model(self) -> Installment:
        return Installment(
            number=self.number,
            due_date=self.due_date,
            value_cents=self.value_cents,
            amount_paid_cents=0,
        )


def generate_installments(total_cents: int, count: int, start_date: date) -> list[InstallmentPlan]:
    """
    Split total_cents into `count` equal installments.

    Installment k is due k calendar months after start_date (the first one
    a month after the sale, never on the sale date). Integer division leaves
    up to count-1 cents over; they are added to the last installment so the
    schedule always sums to the total exactly.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValidationError("installment count must be a positive integer")
    if total_cents < 0:
        raise ValidationError("total must be >= 0")

    base, remainder = divmod(total_cents, count)

    plans = []
    for number in range(1, count + 1):
        value = base + remainder if number == count else base
        plans.append(InstallmentPlan(
            number=number,
            due_date=add_months(start_date, number),
            value_cents=value,
        ))
    return plans


def build_installments(total_cents: int, count: int, start_date: date) -> list[Installment]:
    return [plan.to_model() for plan in generate_installments(total_cents, count, start_date)]
