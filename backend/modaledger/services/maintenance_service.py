# Overview: Storage health and diagnostics probes.

from __future__ import annotations

import time

from ..extensions import db
from ..models import DiagnosticProbe
from modaledger.time_utils import utcnow
from .document_store import collection_counts

PROBE_NOTE = "connectivity_check"


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


def check_database_health() -> dict:
    """Count every collection; reports latency of the round trip."""
    start_time = time.time()
    counts = collection_counts()
    return {
        "status": "healthy",
        "latency_ms": _elapsed_ms(start_time),
        "details": counts,
    }


def run_diagnostics() -> dict:
    """
    Write, read back and delete a probe row, one step at a time.

    Each step is reported with its latency. The first failing step stops the
    run; its error is re-raised after the partial log is attached.
    """
    steps: list[dict] = []

    def step(name: str, fn):
        start_time = time.time()
        try:
            detail = fn()
        except Exception:
            db.session.rollback()
            steps.append({"step": name, "ok": False, "latency_ms": _elapsed_ms(start_time)})
            raise
        steps.append({"step": name, "ok": True, "latency_ms": _elapsed_ms(start_time), **(detail or {})})

    probe = DiagnosticProbe(note=PROBE_NOTE, created_at=utcnow())

    def write():
        db.session.add(probe)
        db.session.commit()
        return {"id": probe.id}

    def read():
        found = db.session.query(DiagnosticProbe).filter_by(note=PROBE_NOTE).count()
        return {"found": found}

    def delete():
        db.session.query(DiagnosticProbe).filter_by(id=probe.id).delete(synchronize_session=False)
        db.session.commit()
        return None

    try:
        step("write", write)
        step("read", read)
        step("delete", delete)
    except Exception as exc:
        exc.diagnostic_steps = steps
        raise

    return {"status": "ok", "steps": steps}
