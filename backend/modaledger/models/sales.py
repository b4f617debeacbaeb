from __future__ import annotations

from datetime import date

from ..extensions import db
from modaledger.services.money import OVERDUE_TOLERANCE_CENTS, is_settled
from modaledger.time_utils import to_utc_z
from .catalog import new_id


class Sale(db.Model):
    """
    Sale aggregate: one checkout, its item snapshots and its installment plan.

    Items and the total are fixed at creation. After that, only installment
    payment fields change (see settlement_service). customer_id/customer_name
    are copied at checkout; there is no foreign key to customers so deleting
    a customer never rewrites history.
    """
    __tablename__ = "sales"
    __collection__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_date", "date"),
        db.Index("ix_sales_customer_name", "customer_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_id = db.Column(db.String(36), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)

    # Creation timestamp (UTC-naive); never updated
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Amounts in cents: total = max(0, subtotal - discount)
    total_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
        lazy="selectin",
    )
    installments = db.relationship(
        "Installment",
        backref="sale",
        cascade="all, delete-orphan",
        order_by="Installment.number",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def subtotal_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)

    @property
    def paid_cents(self) -> int:
        return sum(inst.amount_paid_cents or 0 for inst in self.installments)

    @property
    def remaining_cents(self) -> int:
        return max(0, self.total_cents - self.paid_cents)

    @property
    def is_fully_paid(self) -> bool:
        return is_settled(self.paid_cents, self.total_cents)

    def find_installment(self, installment_id: str) -> "Installment | None":
        for inst in self.installments:
            if inst.id == installment_id:
                return inst
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "date": to_utc_z(self.date),
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "remaining_cents": self.remaining_cents,
            "is_fully_paid": self.is_fully_paid,
            "version_id": self.version_id,
            "items": [item.to_dict() for item in self.items],
            "installments": [inst.to_dict() for inst in self.installments],
        }


class SaleItem(db.Model):
    """Line snapshot: later catalog price changes never touch these rows."""
    __tablename__ = "sale_items"
    __collection__ = "sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    # Copied from the catalog at checkout; not a foreign key
    product_id = db.Column(db.String(36), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Installment(db.Model):
    """
    One scheduled obligation of a sale.

    amount_paid_cents is the running total typed by the operator (absolute,
    not a delta). `paid` is derived from it on every read and is never stored,
    so a stale flag cannot exist.
    """
    __tablename__ = "installments"
    __collection__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "number", name="uq_installments_sale_number"),
        db.Index("ix_installments_due_date", "due_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    number = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    value_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    # Bumped on every settlement so concurrent edits of the same installment
    # are detected instead of silently overwritten.
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def paid(self) -> bool:
        return is_settled(self.amount_paid_cents or 0, self.value_cents)

    @property
    def remaining_cents(self) -> int:
        return max(0, self.value_cents - (self.amount_paid_cents or 0))

    def is_overdue(self, as_of: date) -> bool:
        return self.remaining_cents > OVERDUE_TOLERANCE_CENTS and self.due_date < as_of

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "due_date": self.due_date.isoformat(),
            "value_cents": self.value_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_cents": self.remaining_cents,
            "paid": self.paid,
            "version_id": self.version_id,
        }
