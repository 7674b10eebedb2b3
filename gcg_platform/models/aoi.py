"""
GCG Assessment Platform
Area of Improvement (AOI) model.

Models:
    - Aoi: remediation item attached to an under-performing KKA, parameter
      or factor of one assessment

State machine (AOI_TRANSITIONS):
    open        → in_progress | completed
    in_progress → completed | overdue
    overdue     → in_progress | completed
    completed   → (terminal)
"""

import uuid
from datetime import date, datetime, timezone

from gcg_platform.models import db


# ── Constants ────────────────────────────────────────────────────────────────

AOI_TARGET_TYPES = {"kka", "parameter", "factor"}

AOI_STATUSES = {"open", "in_progress", "completed", "overdue"}

# Legacy label used by reviewers for the in-progress/verification step.
AOI_STATUS_ALIASES = {"verifikasi": "in_progress"}

AOI_TRANSITIONS = {
    "open": {"in_progress", "completed"},
    "in_progress": {"completed", "overdue"},
    "overdue": {"in_progress", "completed"},
    "completed": set(),
}

AOI_PRIORITIES = {"critical", "high", "medium", "low"}


def normalize_aoi_status(status):
    """Map aliases onto canonical statuses. Unknown values pass through."""
    if status is None:
        return None
    status = str(status).strip().lower()
    return AOI_STATUS_ALIASES.get(status, status)


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Aoi(db.Model):
    """An improvement item. Never hard-deleted; ``archive`` clears is_active."""

    __tablename__ = "aois"
    __table_args__ = (
        db.UniqueConstraint("assessment_id", "kka_id", name="uq_aoi_assessment_kka"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    kka_id = db.Column(
        db.String(36), db.ForeignKey("assessment_kkas.id", ondelete="SET NULL"),
        nullable=True, index=True, comment="Set for generated items; one generated AOI per KKA",
    )
    target_type = db.Column(db.String(20), nullable=False, comment="kka | parameter | factor")
    target_id = db.Column(db.String(36), nullable=False, index=True)
    nama = db.Column(db.String(300), default="")
    recommendation = db.Column(db.Text, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    priority = db.Column(db.String(20), nullable=False, default="medium")
    status = db.Column(db.String(20), nullable=False, default="open", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.String(36), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def can_transition_to(self, new_status):
        return new_status in AOI_TRANSITIONS.get(self.status, set())

    def is_overdue(self, as_of=None):
        if not self.due_date or self.status == "completed":
            return False
        return self.due_date < (as_of or date.today())

    def to_dict(self):
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "kka_id": self.kka_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "nama": self.nama,
            "recommendation": self.recommendation,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "priority": self.priority,
            "status": self.status,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Aoi {self.id[:8]} {self.target_type}:{self.target_id[:8]} ({self.status})>"
