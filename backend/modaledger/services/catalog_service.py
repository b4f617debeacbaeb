# backend/modaledger/services/catalog_service.py
"""
Catalog Service

Product master data plus the two operations sale creation depends on:
reading current stock and decrementing it only when enough is on hand.
"""
from __future__ import annotations

from sqlalchemy import func, or_, update

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from .document_store import mark_changed

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "category", "size", "color", "price_cents", "cost_cents", "stock"}

SKU_BRAND = "BS"


def generate_sku(*, category: str | None, color: str | None, size: str | None, sequence: int | str) -> str:
    """
    Build a store SKU: BS-<CAT>-<COLOR>-<seq>-<size>.

    Category and color contribute their first two letters upper-cased
    ("XX" when empty), size is lower-cased ("u" when empty) and numeric
    sequences are zero-padded to two digits.
    """
    cat = (category or "XX")[:2].upper()
    col = (color or "XX")[:2].upper()
    sz = (size or "U").lower()
    return f"{SKU_BRAND}-{cat}-{col}-{str(sequence).zfill(2)}-{sz}"


def _sku_taken(sku: str, exclude_id: str | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _allocate_sku(patch: dict) -> str:
    sequence = db.session.query(func.count(Product.id)).scalar() + 1
    while True:
        candidate = generate_sku(
            category=patch.get("category"),
            color=patch.get("color"),
            size=patch.get("size"),
            sequence=sequence,
        )
        if not _sku_taken(candidate):
            return candidate
        sequence += 1


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(*, search: str | None = None, in_stock: bool = False) -> dict:
    """Products ordered by name; `search` matches name or sku, case-insensitive."""
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(func.lower(Product.name).like(pattern), func.lower(Product.sku).like(pattern)))
    if in_stock:
        query = query.filter(Product.stock > 0)

    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def create_product(*, patch: dict) -> Product:
    """Create product from a validated patch; a missing sku is generated."""
    data = dict(patch)
    if not data.get("sku"):
        data["sku"] = _allocate_sku(data)
    elif _sku_taken(data["sku"]):
        raise ConflictError(f"SKU already exists: {data['sku']}")

    product = Product()
    apply_product_patch(product, data)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(*, product_id: str, patch: dict, expected_version: int | None = None) -> Product:
    product = get_product(product_id)
    if expected_version is not None and expected_version != product.version_id:
        raise ConflictError(
            "Product was changed by another session",
            details={"expected_version": expected_version, "current_version": product.version_id},
        )
    if "sku" in patch:
        if not patch["sku"]:
            raise ValidationError("sku cannot be blank")
        if _sku_taken(patch["sku"], exclude_id=product.id):
            raise ConflictError(f"SKU already exists: {patch['sku']}")

    apply_product_patch(product, patch)
    db.session.commit()
    return product


def delete_product(*, product_id: str) -> None:
    product = get_product(product_id)
    db.session.delete(product)
    db.session.commit()


def get_stock(product_id: str) -> int:
    stock = db.session.query(Product.stock).filter(Product.id == product_id).scalar()
    if stock is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return stock


def decrement_stock(product_id: str, quantity: int) -> None:
    """
    Atomically take `quantity` units out of stock, only if that many are on
    hand. Does not commit: the caller owns the transaction.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        mark_changed(db.session, "products")
        return

    on_hand = get_stock(product_id)
    raise InsufficientStockError(
        "Insufficient stock",
        details={"product_id": product_id, "requested_quantity": quantity, "on_hand": on_hand},
    )
