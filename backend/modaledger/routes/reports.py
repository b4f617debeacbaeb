# Overview: Flask API routes for ledger reports; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..errors import ValidationError
from ..services import reporting_service
from modaledger.time_utils import parse_iso_date

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _as_of():
    try:
        return parse_iso_date(request.args.get("as_of"))
    except ValueError:
        raise ValidationError("as_of must be YYYY-MM-DD")


@reports_bp.get("/dashboard")
@json_errors("build dashboard")
def dashboard_route():
    """Revenue, received, receivable and overdue count. ?as_of=YYYY-MM-DD overrides today."""
    return jsonify(reporting_service.dashboard_summary(today=_as_of()))


@reports_bp.get("/overdue")
@json_errors("list overdue installments")
def overdue_route():
    items = reporting_service.overdue_installments(today=_as_of())
    return jsonify({"items": items, "count": len(items)})
