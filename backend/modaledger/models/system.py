from __future__ import annotations

from ..extensions import db
from modaledger.time_utils import to_utc_z
from .catalog import new_id


class DiagnosticProbe(db.Model):
    """Scratch row written and removed by the storage diagnostics round trip."""
    __tablename__ = "diagnostic_probes"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    note = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "note": self.note, "created_at": to_utc_z(self.created_at)}
