# Overview: Flask API routes for catalog imports; parses input and returns JSON responses.

"""
Import Routes

Supports CSV (comma or semicolon) and Excel (.xlsx) uploads as multipart
"file", or raw CSV text as the request body. Preview never writes; apply
re-plans against the current catalog before writing.
"""

from flask import Blueprint, jsonify, request

from ..decorators import json_errors
from ..errors import ValidationError
from ..services import import_service
from ..services.import_schemas import parse_product_rows, parse_product_workbook


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


def _parse_upload():
    if "file" in request.files:
        file = request.files["file"]
        filename = file.filename or ""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext in XLSX_EXTENSIONS:
            try:
                return parse_product_workbook(file.stream)
            except Exception as e:
                raise ValidationError("Failed to read workbook") from e
        if ext in {"csv", "txt", ""}:
            try:
                text = file.stream.read().decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise ValidationError("CSV must be UTF-8 encoded") from e
            return parse_product_rows(text)
        raise ValidationError("Unsupported file format")

    text = request.get_data(as_text=True)
    if not text.strip():
        raise ValidationError("file is required")
    return parse_product_rows(text)


@imports_bp.post("/products/preview")
@json_errors("preview product import")
def preview_products_route():
    return jsonify(import_service.preview_import(_parse_upload()))


@imports_bp.post("/products/apply")
@json_errors("apply product import")
def apply_products_route():
    result = import_service.apply_import(_parse_upload())
    status = 200 if not result["result"]["failed"] else 207
    return jsonify(result), status
