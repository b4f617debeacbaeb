# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..models import Customer
from ..services import customers_service
from ..validation import CUSTOMER_POLICY, enforce_rules_customer, parse_expected_version, validate_payload

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@json_errors("list customers")
def list_customers_route():
    return jsonify(customers_service.list_customers(search=request.args.get("search")))


@customers_bp.post("")
@json_errors("create customer")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch)

    customer = customers_service.create_customer(patch=patch)
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.put("/<customer_id>")
@json_errors("update customer")
def update_customer_route(customer_id: str):
    payload = dict(request.get_json(silent=True) or {})
    expected_version = parse_expected_version(payload.pop("version_id", None))
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch)

    customer = customers_service.update_customer(
        customer_id=customer_id,
        patch=patch,
        expected_version=expected_version,
    )
    return jsonify({"customer": customer.to_dict()})


@customers_bp.delete("/<customer_id>")
@json_errors("delete customer")
def delete_customer_route(customer_id: str):
    customers_service.delete_customer(customer_id=customer_id)
    return jsonify({"deleted": customer_id})
