# Overview: Flask API routes for catalog products; parses input and returns JSON responses.

# backend/modaledger/routes/products.py
"""
Product catalog routes.

Amounts are integer cents (price_cents, cost_cents). Clients that only
have currency units may send "price"/"cost" instead; they are converted
with half-up rounding before validation.
"""
from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..models import Product
from ..services import catalog_service
from ..services.money import to_cents
from ..validation import PRODUCT_POLICY, enforce_rules_product, parse_expected_version, validate_payload

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_payload(payload: dict) -> dict:
    data = dict(payload)
    for unit_key, cents_key in (("price", "price_cents"), ("cost", "cost_cents")):
        if unit_key in data:
            data[cents_key] = to_cents(data.pop(unit_key), field=unit_key)
    data.pop("version_id", None)
    return data


@products_bp.get("")
@json_errors("list products")
def list_products_route():
    """
    Query params:
    - search: matches name or sku (case-insensitive)
    - in_stock: "true" to hide products with no stock
    """
    search = request.args.get("search")
    in_stock = request.args.get("in_stock", "").lower() == "true"
    return jsonify(catalog_service.list_products(search=search, in_stock=in_stock))


@products_bp.post("")
@json_errors("create product")
def create_product_route():
    payload = _product_payload(request.get_json(silent=True) or {})
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = catalog_service.create_product(patch=patch)
    return jsonify({"product": product.to_dict()}), 201


@products_bp.put("/<product_id>")
@json_errors("update product")
def update_product_route(product_id: str):
    raw = request.get_json(silent=True) or {}
    expected_version = parse_expected_version(raw.get("version_id"))
    patch = validate_payload(model=Product, payload=_product_payload(raw), policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    product = catalog_service.update_product(
        product_id=product_id,
        patch=patch,
        expected_version=expected_version,
    )
    return jsonify({"product": product.to_dict()})


@products_bp.delete("/<product_id>")
@json_errors("delete product")
def delete_product_route(product_id: str):
    catalog_service.delete_product(product_id=product_id)
    return jsonify({"deleted": product_id})
