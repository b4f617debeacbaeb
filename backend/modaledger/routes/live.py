# Overview: Server-Sent Events stream of whole collection snapshots.

import json

from flask import Blueprint, Response, current_app, stream_with_context

from ..decorators import json_errors
from ..services import document_store

live_bp = Blueprint("live", __name__, url_prefix="/api/live")


def _sse(snapshot) -> str:
    if snapshot is None:
        return ": keep-alive\n\n"
    return f"event: snapshot\ndata: {json.dumps(snapshot, ensure_ascii=False)}\n\n"


@live_bp.get("/<collection>")
@json_errors("open live stream")
def live_collection_route(collection: str):
    """
    Stream the full ordered collection on connect and after every committed
    change. Idle connections get a keep-alive comment every
    LEDGER_LIVE_HEARTBEAT_SECONDS.
    """
    if collection not in document_store.COLLECTIONS:
        return {"error": f"Unknown collection: {collection}"}, 404

    heartbeat = current_app.config.get("LEDGER_LIVE_HEARTBEAT_SECONDS", 15)
    snapshots = document_store.iter_snapshots(collection, heartbeat=heartbeat)

    return Response(
        stream_with_context(_sse(s) for s in snapshots),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
