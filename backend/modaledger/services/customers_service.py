# backend/modaledger/services/customers_service.py
"""Customer master data. Sales copy the customer name at checkout."""
from __future__ import annotations

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Customer

CUSTOMER_MUTABLE_FIELDS = {"name", "phone", "email"}


def list_customers(*, search: str | None = None) -> dict:
    query = db.session.query(Customer)
    if search:
        query = query.filter(Customer.name.ilike(f"%{search.strip()}%"))
    customers = query.order_by(Customer.name.asc(), Customer.id.asc()).all()
    return {
        "items": [c.to_dict() for c in customers],
        "count": len(customers),
    }


def get_customer(customer_id: str) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def create_customer(*, patch: dict) -> Customer:
    customer = Customer(
        name=patch["name"],
        phone=patch.get("phone") or "",
        email=patch.get("email") or None,
    )
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(*, customer_id: str, patch: dict, expected_version: int | None = None) -> Customer:
    customer = get_customer(customer_id)
    if expected_version is not None and expected_version != customer.version_id:
        raise ConflictError("Customer was changed by another session")
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v if k != "phone" else (v or ""))
    db.session.commit()
    return customer


def delete_customer(*, customer_id: str) -> None:
    customer = get_customer(customer_id)
    db.session.delete(customer)
    db.session.commit()
