# Overview: Flask API routes for id-addressed collection documents; parses input and returns JSON responses.

"""
Document routes

Uniform access to the three collections (products, customers, sales) by
id, in the models' to_dict() shape:
- PUT replaces a document (creates it when the id is new)
- PATCH merges the provided fields
- DELETE of a sale requires ?confirm=true
"""

from flask import Blueprint, jsonify, request

from ..decorators import confirmation_flag, json_errors
from ..services import document_store

documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.get("/<collection>")
@json_errors("list documents")
def list_documents_route(collection: str):
    items = document_store.list_documents(collection)
    return jsonify({"items": items, "count": len(items)})


@documents_bp.get("/<collection>/<doc_id>")
@json_errors("get document")
def get_document_route(collection: str, doc_id: str):
    return jsonify(document_store.get_document(collection, doc_id))


@documents_bp.put("/<collection>/<doc_id>")
@json_errors("replace document")
def replace_document_route(collection: str, doc_id: str):
    data = request.get_json(silent=True)
    return jsonify(document_store.upsert_document(collection, doc_id, data, merge=False))


@documents_bp.patch("/<collection>/<doc_id>")
@json_errors("merge document")
def merge_document_route(collection: str, doc_id: str):
    data = request.get_json(silent=True)
    return jsonify(document_store.upsert_document(collection, doc_id, data, merge=True))


@documents_bp.delete("/<collection>/<doc_id>")
@json_errors("delete document")
def delete_document_route(collection: str, doc_id: str):
    document_store.delete_document(collection, doc_id, confirm=confirmation_flag())
    return jsonify({"deleted": doc_id})
