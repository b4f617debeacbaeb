# Overview: Route decorators that turn service errors into JSON responses.

from functools import wraps

from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from .errors import ConfirmationRequiredError, LedgerError

_TRUTHY = {"1", "true", "yes", "on"}


def json_errors(action: str):
    """
    Map ledger errors raised by services to their HTTP status.

    Body shape: {"error": message, "details": {...}}. Confirmation errors
    also carry "confirmation_required": true so clients can prompt and retry.
    Anything unexpected is logged with the traceback and returned as a
    plain 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except LedgerError as e:
                body = {"error": str(e)}
                if e.details:
                    body["details"] = e.details
                if isinstance(e, ConfirmationRequiredError):
                    body["confirmation_required"] = True
                return jsonify(body), e.status_code
            except HTTPException:
                raise
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator


def confirmation_flag(payload: dict | None = None) -> bool:
    """True when ?confirm= or the JSON body's "confirm" says yes."""
    raw = request.args.get("confirm")
    if raw is None and payload is not None:
        raw = payload.get("confirm")
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in _TRUTHY if raw is not None else False
