# Overview: Collection-level storage API (products, customers, sales) with live change notification.

"""
Document Store

Each collection is addressed the same way: ordered full listing, get by id,
upsert by id (replace or merge) and delete by id. Documents are the models'
to_dict() shapes. Sales are written whole once; afterwards only the amounts
paid on their installments change.

Live updates: a process-wide ChangeFeed keeps a version counter per
collection. SQLAlchemy session events record which collections a
transaction touched and bump their counters only once it commits, so
subscribers never see rolled-back work. iter_snapshots() turns that into a
stream of whole, ordered snapshots.
"""

from __future__ import annotations

import logging
import threading
from itertools import chain
from typing import Iterator

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..errors import ConfirmationRequiredError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Installment, Product, Sale, SaleItem
from ..validation import (
    CUSTOMER_POLICY,
    PRODUCT_POLICY,
    enforce_rules_customer,
    enforce_rules_product,
    validate_payload,
)
from modaledger.time_utils import parse_iso_date, parse_iso_datetime, utcnow
from .integrity_service import SUM_TOLERANCE_CENTS
from .money import clamp_non_negative

logger = logging.getLogger(__name__)

PRODUCTS = "products"
CUSTOMERS = "customers"
SALES = "sales"

COLLECTIONS = {
    PRODUCTS: Product,
    CUSTOMERS: Customer,
    SALES: Sale,
}

_TOUCHED_KEY = "modaledger.touched_collections"


def _ordering(collection: str):
    if collection == SALES:
        return (Sale.date.desc(), Sale.id.asc())
    model = COLLECTIONS[collection]
    return (model.name.asc(), model.id.asc())


def _model_for(collection: str):
    model = COLLECTIONS.get(collection)
    if model is None:
        raise NotFoundError(f"Unknown collection: {collection}", details={"collection": collection})
    return model


# ---------------------------------------------------------------------------
# Change feed
# ---------------------------------------------------------------------------

class ChangeFeed:
    def __init__(self, collections=COLLECTIONS):
        self._cond = threading.Condition()
        self._versions = {name: 0 for name in collections}

    def version(self, collection: str) -> int:
        with self._cond:
            return self._versions[collection]

    def publish(self, collections) -> None:
        names = [c for c in collections if c in self._versions]
        if not names:
            return
        with self._cond:
            for name in names:
                self._versions[name] += 1
            self._cond.notify_all()
        logger.debug("Published changes for %s", ", ".join(sorted(names)))

    def wait_for_change(self, collection: str, seen: int, timeout: float | None = None) -> int:
        """Block until the collection moves past `seen` or the timeout passes; returns the current version."""
        with self._cond:
            self._cond.wait_for(lambda: self._versions[collection] != seen, timeout=timeout)
            return self._versions[collection]


feed = ChangeFeed()


def mark_changed(session: Session, *collections: str) -> None:
    """Record collections written by bulk statements that bypass the unit of work."""
    session.info.setdefault(_TOUCHED_KEY, set()).update(collections)


def _track_flush(session, flush_context) -> None:
    touched = session.info.setdefault(_TOUCHED_KEY, set())
    for obj in chain(session.new, session.dirty, session.deleted):
        name = getattr(type(obj), "__collection__", None)
        if name:
            touched.add(name)


def _publish_commit(session) -> None:
    touched = session.info.pop(_TOUCHED_KEY, None)
    if touched:
        feed.publish(touched)


def _discard_rollback(session) -> None:
    session.info.pop(_TOUCHED_KEY, None)


def install_session_hooks() -> None:
    for name, fn in (
        ("after_flush", _track_flush),
        ("after_commit", _publish_commit),
        ("after_rollback", _discard_rollback),
    ):
        if not event.contains(Session, name, fn):
            event.listen(Session, name, fn)


# ---------------------------------------------------------------------------
# Collection operations
# ---------------------------------------------------------------------------

def list_documents(collection: str) -> list[dict]:
    model = _model_for(collection)
    rows = db.session.query(model).order_by(*_ordering(collection)).all()
    return [row.to_dict() for row in rows]


def get_document(collection: str, doc_id: str) -> dict:
    model = _model_for(collection)
    row = db.session.get(model, doc_id)
    if row is None:
        raise NotFoundError(f"{collection} document not found", details={"id": doc_id})
    return row.to_dict()


def _apply_catalog_document(model, policy, rules, row, data: dict, merge: bool) -> None:
    payload = {k: v for k, v in data.items() if k in policy.writable_fields}
    patch = validate_payload(model=model, payload=payload, policy=policy, partial=merge)
    rules(patch)
    if not merge:
        for key in policy.writable_fields - patch.keys():
            column = model.__mapper__.columns[key]
            default = column.default.arg if column.default is not None else None
            setattr(row, key, default)
    for key, value in patch.items():
        setattr(row, key, value)


def _sale_children(data: dict) -> tuple[list[SaleItem], list[Installment]]:
    items = [
        SaleItem(
            product_id=str(item["product_id"]),
            product_name=str(item.get("product_name") or ""),
            quantity=int(item["quantity"]),
            price_cents=int(item["price_cents"]),
        )
        for item in data.get("items") or []
    ]
    installments = []
    for position, inst in enumerate(data.get("installments") or [], start=1):
        due = parse_iso_date(inst.get("due_date"))
        if due is None:
            raise ValidationError("installment due_date is required")
        kwargs = {}
        if inst.get("id"):
            kwargs["id"] = str(inst["id"])
        installments.append(
            Installment(
                number=int(inst.get("number") or position),
                due_date=due,
                value_cents=int(inst["value_cents"]),
                amount_paid_cents=clamp_non_negative(int(inst.get("amount_paid_cents") or 0)),
                **kwargs,
            )
        )
    return items, installments


def _check_sku(product: Product) -> None:
    if not product.sku:
        raise ValidationError("sku is required")
    with db.session.no_autoflush:
        clash = (
            db.session.query(Product.id)
            .filter(Product.sku == product.sku, Product.id != product.id)
            .first()
        )
    if clash is not None:
        raise ConflictError(f"SKU already exists: {product.sku}")


def build_sale(data: dict) -> Sale:
    """New Sale (not yet added to the session) from a sale document in to_dict() shape."""
    missing = [k for k in ("id", "customer_id", "customer_name", "total_cents", "installments") if k not in data]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    try:
        items, installments = _sale_children(data)
        return Sale(
            id=str(data["id"]),
            customer_id=str(data["customer_id"]),
            customer_name=str(data["customer_name"]),
            date=parse_iso_datetime(data.get("date")) or utcnow(),
            total_cents=int(data["total_cents"] or 0),
            discount_cents=int(data.get("discount_cents") or 0),
            items=items,
            installments=installments,
        )
    except ValidationError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Malformed sale document: {exc}") from exc


def _check_new_sale(sale: Sale) -> None:
    if sale.total_cents < 0 or sale.discount_cents < 0:
        raise ValidationError("total and discount must be >= 0")
    if not sale.installments:
        raise ValidationError("A sale needs at least one installment")
    if any(item.quantity <= 0 for item in sale.items):
        raise ValidationError("quantity must be a positive integer")
    scheduled = sum(inst.value_cents for inst in sale.installments)
    if abs(scheduled - sale.total_cents) > SUM_TOLERANCE_CENTS:
        raise ValidationError(
            "Installment values must add up to the sale total",
            details={"total_cents": sale.total_cents, "scheduled_cents": scheduled},
        )


def _patch_sale_payments(sale: Sale, data: dict) -> None:
    """
    Stored sales only take new amounts paid on existing installments.
    Other fields may be echoed back unchanged; any difference is a conflict.
    """
    current = sale.to_dict()
    for key, value in data.items():
        if key == "installments":
            continue
        if current.get(key) != value:
            raise ConflictError(
                "Sales cannot be changed after checkout; only installment payments can be recorded",
                details={"field": key},
            )

    by_id = {inst.id: inst for inst in sale.installments}
    try:
        for patch in data.get("installments") or []:
            inst = by_id.get(patch.get("id"))
            if inst is None:
                raise NotFoundError("Installment not found", details={"installment_id": patch.get("id")})
            stored = inst.to_dict()
            for key in ("number", "due_date", "value_cents"):
                if key in patch and patch[key] != stored[key]:
                    raise ConflictError(
                        "Installment schedules cannot be changed after checkout",
                        details={"installment_id": inst.id, "field": key},
                    )
            if patch.get("amount_paid_cents") is not None:
                inst.amount_paid_cents = clamp_non_negative(int(patch["amount_paid_cents"]))
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValidationError(f"Malformed installment patch: {exc}") from exc


def upsert_document(collection: str, doc_id: str, data: dict, *, merge: bool = True) -> dict:
    """
    Create or update one document by id.

    merge=True patches only the provided fields; merge=False replaces the
    document, resetting absent fields to their defaults. A stored sale can
    only be merged, and only its installments' amounts paid change.
    """
    model = _model_for(collection)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    row = db.session.get(model, doc_id)
    creating = row is None

    try:
        if collection == SALES:
            if creating:
                row = build_sale(dict(data, id=doc_id))
                _check_new_sale(row)
            elif not merge:
                raise ConflictError("Sales cannot be replaced after checkout", details={"id": doc_id})
            else:
                _patch_sale_payments(row, data)
        else:
            if creating:
                row = model(id=doc_id)
                merge = False
            if collection == PRODUCTS:
                _apply_catalog_document(Product, PRODUCT_POLICY, enforce_rules_product, row, data, merge)
                _check_sku(row)
            else:
                _apply_catalog_document(Customer, CUSTOMER_POLICY, enforce_rules_customer, row, data, merge)

        if creating:
            db.session.add(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return row.to_dict()


def delete_document(collection: str, doc_id: str, *, confirm: bool = False) -> None:
    """Delete one document; sales need explicit confirmation and keep stock as is."""
    model = _model_for(collection)
    if collection == SALES and not confirm:
        raise ConfirmationRequiredError("Deleting a sale cannot be undone; confirm to proceed")
    row = db.session.get(model, doc_id)
    if row is None:
        raise NotFoundError(f"{collection} document not found", details={"id": doc_id})
    db.session.delete(row)
    db.session.commit()


def collection_counts() -> dict[str, int]:
    return {name: db.session.query(model).count() for name, model in COLLECTIONS.items()}


def iter_snapshots(collection: str, *, heartbeat: float = 15.0) -> Iterator[list[dict] | None]:
    """
    Yield the full ordered collection now and again after every committed
    change to it. Yields None when `heartbeat` seconds pass without one.

    Must run inside an app context; the read transaction is closed after
    each snapshot so later reads see newly committed data.
    """
    _model_for(collection)
    seen = feed.version(collection)
    while True:
        snapshot = list_documents(collection)
        db.session.rollback()
        yield snapshot

        while True:
            current = feed.wait_for_change(collection, seen, timeout=heartbeat)
            if current != seen:
                seen = current
                break
            yield None
