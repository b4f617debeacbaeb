# Overview: Flask API routes for backup export and restore; parses input and returns JSON responses.

import json

from flask import Blueprint, Response, jsonify, request

from ..decorators import confirmation_flag, json_errors
from ..errors import ValidationError
from ..services import backup_service
from modaledger.time_utils import today

backup_bp = Blueprint("backup", __name__, url_prefix="/api/backup")


@backup_bp.get("")
@json_errors("export backup")
def export_backup_route():
    """Download every collection as a JSON backup file."""
    body = json.dumps(backup_service.export_backup(), ensure_ascii=False, indent=2)
    filename = f"backup_modagestao_{today().isoformat()}.json"
    return Response(
        body,
        mimetype="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@backup_bp.post("/restore")
@json_errors("restore backup")
def restore_backup_route():
    """
    Replace all data with a backup.

    Accepts the backup as a multipart "file" or as the JSON body.
    Requires ?confirm=true.
    """
    if "file" in request.files:
        try:
            payload = json.load(request.files["file"].stream)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError("Backup file is not valid JSON") from e
    else:
        payload = request.get_json(silent=True)
        if payload is None:
            raise ValidationError("Backup file is not valid JSON")

    result = backup_service.restore_backup(payload, confirm=confirmation_flag())
    return jsonify(result)
