# Overview: Whole-store backup export, restore and wipe.

"""
Backup files use the storefront's document shape: camelCase keys and
amounts in currency units, plus `exportedAt` and a fixed `system`
signature. Restore replaces all three collections in one transaction.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import ConfirmationRequiredError, ValidationError
from ..extensions import db
from ..models import Customer, Installment, Product, Sale, SaleItem
from ..models.catalog import new_id
from modaledger.time_utils import to_utc_z, utcnow
from .document_store import CUSTOMERS, PRODUCTS, SALES, build_sale, mark_changed
from .integrity_service import IntegrityReport, repair_sale_document
from .money import from_cents, to_cents

logger = logging.getLogger(__name__)

BACKUP_SIGNATURE = "ModaGestão AI"
WIPE_CONFIRM_TEXT = "DELETAR"


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def _product_document(p: Product) -> dict:
    return {
        "id": p.id,
        "sku": p.sku,
        "name": p.name,
        "category": p.category,
        "size": p.size,
        "color": p.color,
        "price": from_cents(p.price_cents),
        "cost": from_cents(p.cost_cents),
        "stock": p.stock,
    }


def _customer_document(c: Customer) -> dict:
    return {"id": c.id, "name": c.name, "phone": c.phone, "email": c.email or ""}


def _sale_document(s: Sale) -> dict:
    return {
        "id": s.id,
        "customerId": s.customer_id,
        "customerName": s.customer_name,
        "date": to_utc_z(s.date),
        "total": from_cents(s.total_cents),
        "discount": from_cents(s.discount_cents),
        "items": [
            {
                "productId": item.product_id,
                "productName": item.product_name,
                "quantity": item.quantity,
                "price": from_cents(item.price_cents),
            }
            for item in s.items
        ],
        "installments": [
            {
                "id": inst.id,
                "number": inst.number,
                "dueDate": inst.due_date.isoformat(),
                "value": from_cents(inst.value_cents),
                "amountPaid": from_cents(inst.amount_paid_cents),
                "paid": inst.paid,
            }
            for inst in s.installments
        ],
    }


def export_backup() -> dict:
    products = db.session.query(Product).order_by(Product.name.asc()).all()
    customers = db.session.query(Customer).order_by(Customer.name.asc()).all()
    sales = db.session.query(Sale).order_by(Sale.date.desc()).all()
    return {
        "products": [_product_document(p) for p in products],
        "customers": [_customer_document(c) for c in customers],
        "sales": [_sale_document(s) for s in sales],
        "exportedAt": to_utc_z(utcnow()),
        "system": BACKUP_SIGNATURE,
    }


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------

def _list_of_dicts(payload: dict, key: str) -> list[dict]:
    value = payload.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ValidationError(f"Backup field '{key}' must be a list of objects")
    return value


def _product_from_document(doc: dict, index: int) -> Product:
    sku = str(doc.get("sku") or "").strip()
    if not sku:
        raise ValidationError(f"products[{index}]: sku is required")
    return Product(
        id=str(doc.get("id") or new_id()),
        sku=sku,
        name=str(doc.get("name") or ""),
        category=str(doc.get("category") or ""),
        size=str(doc.get("size") or ""),
        color=str(doc.get("color") or ""),
        price_cents=to_cents(doc.get("price") or 0, field=f"products[{index}].price"),
        cost_cents=to_cents(doc.get("cost") or 0, field=f"products[{index}].cost"),
        stock=int(doc.get("stock") or 0),
    )


def _customer_from_document(doc: dict) -> Customer:
    return Customer(
        id=str(doc.get("id") or new_id()),
        name=str(doc.get("name") or ""),
        phone=str(doc.get("phone") or ""),
        email=doc.get("email") or None,
    )


def _sale_record(doc: dict, index: int) -> dict:
    """Backup sale (camelCase, units) -> sale document (snake_case, cents)."""
    where = f"sales[{index}]"
    installments = []
    for position, inst in enumerate(doc.get("installments") or [], start=1):
        amount_paid = inst.get("amountPaid")
        record = {
            "id": inst.get("id"),
            "number": inst.get("number") or position,
            "due_date": inst.get("dueDate"),
            "value_cents": to_cents(inst.get("value") or 0, field=f"{where}.installments.value"),
            "amount_paid_cents": None if amount_paid is None else to_cents(amount_paid, field=f"{where}.installments.amountPaid"),
        }
        if "paid" in inst:
            record["paid"] = bool(inst["paid"])
        installments.append(record)

    return {
        "id": str(doc.get("id") or new_id()),
        "customer_id": str(doc.get("customerId") or ""),
        "customer_name": str(doc.get("customerName") or ""),
        "date": doc.get("date"),
        "total_cents": to_cents(doc.get("total") or 0, field=f"{where}.total"),
        "discount_cents": to_cents(doc.get("discount") or 0, field=f"{where}.discount"),
        "items": [
            {
                "product_id": item.get("productId"),
                "product_name": item.get("productName"),
                "quantity": item.get("quantity"),
                "price_cents": to_cents(item.get("price") or 0, field=f"{where}.items.price"),
            }
            for item in doc.get("items") or []
        ],
        "installments": installments,
    }


def _clear_all() -> dict[str, int]:
    counts = {
        SALES: db.session.query(Sale).count(),
        PRODUCTS: db.session.query(Product).count(),
        CUSTOMERS: db.session.query(Customer).count(),
    }
    db.session.query(Installment).delete(synchronize_session=False)
    db.session.query(SaleItem).delete(synchronize_session=False)
    db.session.query(Sale).delete(synchronize_session=False)
    db.session.query(Product).delete(synchronize_session=False)
    db.session.query(Customer).delete(synchronize_session=False)
    db.session.expunge_all()
    mark_changed(db.session, PRODUCTS, CUSTOMERS, SALES)
    return counts


def restore_backup(payload: Any, *, confirm: bool = False) -> dict:
    """
    Replace every collection with the backup's contents.

    The signature is checked before anything else; nothing is written
    unless `confirm` is true. Sale documents go through the integrity
    repair (legacy paid flags, installment sums) before they are stored.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Backup must be a JSON object")
    if payload.get("system") != BACKUP_SIGNATURE:
        raise ValidationError("Invalid backup file: unknown system signature")
    if not confirm:
        raise ConfirmationRequiredError(
            "Restoring a backup replaces all current data; confirm to continue",
            details={"confirmation": "confirm=true"},
        )

    product_docs = _list_of_dicts(payload, PRODUCTS)
    customer_docs = _list_of_dicts(payload, CUSTOMERS)
    sale_docs = _list_of_dicts(payload, SALES)

    products = [_product_from_document(doc, i) for i, doc in enumerate(product_docs)]
    skus = [p.sku for p in products]
    duplicates = sorted({sku for sku in skus if skus.count(sku) > 1})
    if duplicates:
        raise ValidationError("Backup contains duplicate SKUs", details={"skus": duplicates})

    customers = [_customer_from_document(doc) for doc in customer_docs]

    report = IntegrityReport()
    sale_records = []
    for i, doc in enumerate(sale_docs):
        try:
            sale_records.append(repair_sale_document(_sale_record(doc, i), report))
        except (KeyError, TypeError) as exc:
            raise ValidationError(f"sales[{i}]: malformed sale document") from exc

    try:
        replaced = _clear_all()
        db.session.add_all(products)
        db.session.add_all(customers)
        for record in sale_records:
            db.session.add(build_sale(record))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Backup restored: %d products, %d customers, %d sales (%d integrity issues)",
        len(products), len(customers), len(sale_records), len(report.issues),
    )
    return {
        "restored": {PRODUCTS: len(products), CUSTOMERS: len(customers), SALES: len(sale_records)},
        "replaced": replaced,
        "integrity": report.to_dict(),
    }


def wipe_all(confirm_text: str | None) -> dict:
    """Delete every product, customer and sale; requires the typed confirmation text."""
    if confirm_text != WIPE_CONFIRM_TEXT:
        raise ConfirmationRequiredError(
            f'Type "{WIPE_CONFIRM_TEXT}" to erase all data',
            details={"confirmation": WIPE_CONFIRM_TEXT},
        )
    try:
        removed = _clear_all()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.warning("All data wiped: %s", removed)
    return {"removed": removed}
