# Overview: Locking and retry helpers for storage operations.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, TransientStorageError
from ..extensions import db

logger = logging.getLogger(__name__)


def begin_write() -> None:
    """Take the SQLite write lock up front so read-check-write runs serialized."""
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locked database) and StaleDataError
    (optimistic locking conflicts). When retries run out the failure is
    reported as TransientStorageError (or ConflictError for a version that
    kept changing underneath us).
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Storage operation failed after %d attempts: %s", attempts, exc)
                if isinstance(exc, StaleDataError):
                    raise ConflictError("Record was changed by another session; reload and retry") from exc
                raise TransientStorageError("Storage is busy; try again") from exc
            time.sleep(backoff_base * (2 ** attempt))

