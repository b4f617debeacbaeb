# Overview: Flask API routes for sales and installment payments; parses input and returns JSON responses.

# backend/modaledger/routes/sales.py
"""Sales API routes: checkout, history, deletion and installment settlement."""

from flask import Blueprint, jsonify, request

from ..decorators import confirmation_flag, json_errors
from ..errors import ValidationError
from ..services import sales_service, settlement_service
from ..services.money import to_cents
from ..services.sales_service import CartItem
from ..validation import parse_expected_version


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _cents_field(data: dict, cents_key: str, unit_key: str, default: int | None = 0):
    """Read an amount given either in cents (`cents_key`) or currency units (`unit_key`)."""
    if data.get(cents_key) is not None:
        value = data[cents_key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{cents_key} must be an integer")
        return value
    if data.get(unit_key) is not None:
        return to_cents(data[unit_key], field=unit_key)
    return default


def _cart_from_payload(data: dict) -> list[CartItem]:
    raw_items = data.get("items")
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    cart = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        cart.append(CartItem(product_id=raw.get("product_id"), quantity=raw.get("quantity")))
    return cart


@sales_bp.get("")
@json_errors("list sales")
def list_sales_route():
    """Sales history, newest first. ?customer= filters by customer name."""
    return jsonify(sales_service.list_sales(customer=request.args.get("customer")))


@sales_bp.post("")
@json_errors("create sale")
def create_sale_route():
    """
    Check out a cart.

    Body:
    - customer_id: str
    - items: [{product_id, quantity}]
    - discount_cents: int (or discount in currency units), default 0
    - installments: int, default 1
    """
    data = request.get_json(silent=True) or {}
    installment_count = data.get("installments", data.get("installment_count", 1))

    sale = sales_service.create_sale(
        data.get("customer_id"),
        _cart_from_payload(data),
        discount_cents=_cents_field(data, "discount_cents", "discount"),
        installment_count=installment_count,
    )
    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("/<sale_id>")
@json_errors("get sale")
def get_sale_route(sale_id: str):
    return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()})


@sales_bp.delete("/<sale_id>")
@json_errors("delete sale")
def delete_sale_route(sale_id: str):
    """Requires ?confirm=true. Stock is not returned to the catalog."""
    sales_service.delete_sale(sale_id, confirm=confirmation_flag())
    return jsonify({"deleted": sale_id})


@sales_bp.put("/<sale_id>/installments/<installment_id>/payment")
@json_errors("record payment")
def record_payment_route(sale_id: str, installment_id: str):
    """
    Set the total amount paid on one installment (absolute, not added).

    Body: amount_cents (or amount in currency units); optional version_id
    of the installment as last read by the client.
    """
    data = request.get_json(silent=True) or {}
    amount_cents = _cents_field(data, "amount_cents", "amount", default=None)
    if amount_cents is None:
        raise ValidationError("amount is required")

    sale = settlement_service.record_payment(
        sale_id,
        installment_id,
        amount_cents,
        expected_version=parse_expected_version(data.get("version_id")),
    )
    return jsonify({"sale": sale.to_dict()})
