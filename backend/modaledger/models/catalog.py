from __future__ import annotations

import uuid

from ..extensions import db
from modaledger.time_utils import to_utc_z


def new_id() -> str:
    return str(uuid.uuid4())


class Product(db.Model):
    """
    Product master data.

    SKU DESIGN DECISION:
    Product.id is the storage key and never changes once assigned.
    Product.sku is the business key: catalog imports resolve new-vs-existing
    by sku, so the same spreadsheet can be re-imported without losing the
    ids that historical sale items point at.
    """
    __tablename__ = "products"
    __collection__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="")
    size = db.Column(db.String(32), nullable=False, default="")
    color = db.Column(db.String(64), nullable=False, default="")

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Never below zero: writes go through enforce_rules_product and sales
    # decrement with a stock >= quantity guard.
    stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "size": self.size,
            "color": self.color,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Customer(db.Model):
    """Customer master data. Sales keep a snapshot of the name, not a join."""
    __tablename__ = "customers"
    __collection__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
