"""
GCG Assessment Platform
PIC (person / unit in charge) assignment model.

Models:
    - PicAssignment: responsible unit and/or user for one hierarchy target
      or improvement item inside one assessment (table ``pic_map``)
"""

import uuid
from datetime import datetime, timezone

from gcg_platform.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PIC_TARGET_TYPES = {"factor", "parameter", "aoi"}

PIC_STATUSES = {"assigned", "in_progress", "submitted", "completed", "overdue", "needs_revision"}

# Statuses the assigned party may set on their own assignment.
PIC_SELF_SERVICE_STATUSES = {"in_progress", "submitted", "needs_revision"}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class PicAssignment(db.Model):
    """
    Assignment of a target to a responsible unit/user.

    (assessment_id, target_type, target_id) is unique: re-assignment
    overwrites the unit/user pair on the existing row.
    """

    __tablename__ = "pic_map"
    __table_args__ = (
        db.UniqueConstraint(
            "assessment_id", "target_type", "target_id",
            name="uq_pic_map_assessment_target",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    target_type = db.Column(db.String(20), nullable=False, comment="factor | parameter | aoi")
    target_id = db.Column(db.String(36), nullable=False, index=True)
    unit_id = db.Column(db.String(36), nullable=True, index=True, comment="Responsible organizational unit")
    user_id = db.Column(db.String(36), nullable=True, index=True, comment="Directly assigned user")
    status = db.Column(db.String(30), nullable=False, default="assigned")
    assigned_by = db.Column(db.String(36), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def names(self, user_id, unit_id):
        """True if this assignment names the user directly or via their unit."""
        if user_id and self.user_id == user_id:
            return True
        return bool(unit_id) and self.unit_id == unit_id

    def to_dict(self):
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "unit_id": self.unit_id,
            "user_id": self.user_id,
            "status": self.status,
            "assigned_by": self.assigned_by,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
        }

    def __repr__(self):
        who = self.user_id or self.unit_id or "-"
        return f"<PicAssignment {self.target_type}:{self.target_id[:8]} → {who[:8]}>"
