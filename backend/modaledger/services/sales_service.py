"""
Sales Service - checkout and the sale aggregate

WHY: A sale is written once, at checkout, together with its item snapshots,
its installment plan and the stock it consumes. After that only installment
payments change (settlement_service).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..errors import ConfirmationRequiredError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem
from modaledger.time_utils import utcnow
from .catalog_service import decrement_stock
from .concurrency import begin_write, run_with_retry
from .installment_service import build_installments

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartItem:
    product_id: str
    quantity: int


def _validate_cart(cart_items: list[CartItem]) -> dict[str, int]:
    """Merge repeated products and return {product_id: quantity} in cart order."""
    if not cart_items:
        raise ValidationError("Cart is empty")

    merged: dict[str, int] = {}
    for item in cart_items:
        if not item.product_id:
            raise ValidationError("product_id is required for every cart item")
        qty = item.quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError(
                "quantity must be a positive integer",
                details={"product_id": item.product_id, "quantity": qty},
            )
        merged[item.product_id] = merged.get(item.product_id, 0) + qty
    return merged


def create_sale(
    customer_id: str | None,
    cart_items: list[CartItem],
    discount_cents: int = 0,
    installment_count: int = 1,
    *,
    now: datetime | None = None,
) -> Sale:
    """
    Check out a cart for a customer.

    The subtotal uses catalog prices at this instant; the discount can only
    bring the total down to zero. Stock for every line is decremented with a
    `stock >= quantity` guard in the same transaction as the sale insert, so
    an oversold cart leaves no trace.
    """
    if not customer_id:
        raise ValidationError("A customer must be selected")
    quantities = _validate_cart(cart_items)
    if discount_cents is None:
        discount_cents = 0
    if discount_cents < 0:
        raise ValidationError("discount must be >= 0")

    created_at = now or utcnow()

    def _op():
        begin_write()

        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})

        items = []
        for product_id, qty in quantities.items():
            product = db.session.get(Product, product_id)
            if not product:
                raise NotFoundError("Product not found", details={"product_id": product_id})
            items.append(SaleItem(
                product_id=product.id,
                product_name=product.name,
                quantity=qty,
                price_cents=product.price_cents,
            ))

        subtotal = sum(item.line_total_cents for item in items)
        total = max(0, subtotal - discount_cents)

        for item in items:
            decrement_stock(item.product_id, item.quantity)

        sale = Sale(
            customer_id=customer.id,
            customer_name=customer.name,
            date=created_at,
            total_cents=total,
            discount_cents=discount_cents,
            items=items,
            installments=build_installments(total, installment_count, created_at.date()),
        )
        db.session.add(sale)
        db.session.commit()

        logger.info(
            "Sale %s created for %s: total=%d cents, %d installment(s)",
            sale.id, sale.customer_name, sale.total_cents, installment_count,
        )
        return sale

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def get_sale(sale_id: str) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(*, customer: str | None = None) -> dict:
    """Sales history, newest first, optionally filtered by customer name."""
    query = db.session.query(Sale)
    if customer:
        query = query.filter(Sale.customer_name.ilike(f"%{customer.strip()}%"))
    sales = query.order_by(Sale.date.desc(), Sale.id.asc()).all()
    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
    }


def delete_sale(sale_id: str, *, confirm: bool = False) -> None:
    """
    Delete a sale with its items and installments.

    Stock consumed by the sale is NOT returned to the catalog.
    """
    if not confirm:
        raise ConfirmationRequiredError("Deleting a sale cannot be undone; confirm to proceed")
    sale = get_sale(sale_id)
    db.session.delete(sale)
    db.session.commit()
    logger.info("Sale %s deleted", sale_id)
