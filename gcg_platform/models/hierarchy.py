"""
GCG Assessment Platform
Assessment hierarchy models.

Models:
    - Assessment: one self-assessment run, owns a private hierarchy copy
    - AssessmentKka: top-level criteria group
    - AssessmentAspect: sub-criteria under a KKA
    - AssessmentParameter: sub-criteria under an Aspect
    - AssessmentFactor: leaf criterion that receives a Response
    - Response: one score per (assessment, factor)
    - AssessmentRevision: revision request raised by the reviewer

Architecture chain: Assessment → KKA → Aspect → Parameter → Factor → Response

Every hierarchy row carries ``assessment_id`` so each level can be loaded
with one query per assessment. Rows are never shared between assessments:
historic scores stay reproducible when master definitions change.
"""

import uuid
from datetime import datetime, timezone

from gcg_platform.models import db


__all__ = [
    "ASSESSMENT_STATUSES",
    "ASSESSMENT_TRANSITIONS",
    "Assessment",
    "AssessmentKka",
    "AssessmentAspect",
    "AssessmentParameter",
    "AssessmentFactor",
    "Response",
    "AssessmentRevision",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Constants ────────────────────────────────────────────────────────────────

ASSESSMENT_STATUSES = {
    "draft", "in_progress", "submitted", "under_review", "revision_required", "completed",
}

# status → set of statuses reachable in one step
ASSESSMENT_TRANSITIONS = {
    "draft": {"in_progress"},
    "in_progress": {"submitted", "draft"},
    "submitted": {"under_review", "revision_required"},
    "under_review": {"completed", "revision_required"},
    "revision_required": {"submitted", "in_progress"},
    "completed": set(),
}

REVISION_STATUSES = {"pending", "completed"}


# ═════════════════════════════════════════════════════════════════════════════
# Assessment
# ═════════════════════════════════════════════════════════════════════════════

class Assessment(db.Model):
    """A governance self-assessment with its own hierarchy snapshot."""

    __tablename__ = "assessments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(300), nullable=False)
    assessment_date = db.Column(db.Date, nullable=True)
    assessor_id = db.Column(db.String(36), nullable=True, index=True, comment="Named assessor / owner")
    created_by = db.Column(db.String(36), nullable=True, index=True)
    status = db.Column(db.String(30), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def is_owned_by(self, user_id):
        return bool(user_id) and user_id in (self.created_by, self.assessor_id)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "assessment_date": self.assessment_date.isoformat() if self.assessment_date else None,
            "assessor_id": self.assessor_id,
            "created_by": self.created_by,
            "status": self.status,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Assessment {self.id[:8]}: {self.title[:40]} ({self.status})>"


# ═════════════════════════════════════════════════════════════════════════════
# Hierarchy levels
# ═════════════════════════════════════════════════════════════════════════════

class _HierarchyNode:
    """Columns shared by the four hierarchy levels."""

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(db.String(100), nullable=True, comment="Caller-supplied id at build time")
    kode = db.Column(db.String(200), nullable=False)
    nama = db.Column(db.String(500), nullable=False)
    deskripsi = db.Column(db.Text, default="")
    sort = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def _base_dict(self):
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "client_id": self.client_id,
            "kode": self.kode,
            "nama": self.nama,
            "deskripsi": self.deskripsi,
            "sort": self.sort,
            "is_active": self.is_active,
        }


class AssessmentKka(_HierarchyNode, db.Model):
    """Top-level criteria group (KKA) of one assessment."""

    __tablename__ = "assessment_kkas"

    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    weight = db.Column(db.Float, nullable=False, default=1.0)

    def to_dict(self):
        d = self._base_dict()
        d["weight"] = self.weight
        return d

    def __repr__(self):
        return f"<AssessmentKka {self.kode}: {self.nama[:40]}>"


class AssessmentAspect(_HierarchyNode, db.Model):
    """Aspect under a KKA."""

    __tablename__ = "assessment_aspects"

    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    kka_id = db.Column(
        db.String(36), db.ForeignKey("assessment_kkas.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    weight = db.Column(db.Float, nullable=False, default=1.0)

    def to_dict(self):
        d = self._base_dict()
        d.update({"kka_id": self.kka_id, "weight": self.weight})
        return d

    def __repr__(self):
        return f"<AssessmentAspect {self.kode}: {self.nama[:40]}>"


class AssessmentParameter(_HierarchyNode, db.Model):
    """Parameter under an Aspect."""

    __tablename__ = "assessment_parameters"

    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    aspect_id = db.Column(
        db.String(36), db.ForeignKey("assessment_aspects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    weight = db.Column(db.Float, nullable=False, default=1.0)

    def to_dict(self):
        d = self._base_dict()
        d.update({"aspect_id": self.aspect_id, "weight": self.weight})
        return d

    def __repr__(self):
        return f"<AssessmentParameter {self.kode}: {self.nama[:40]}>"


class AssessmentFactor(_HierarchyNode, db.Model):
    """Leaf criterion. ``kode`` is the dotted path of all four level codes."""

    __tablename__ = "assessment_factors"
    __table_args__ = (
        db.UniqueConstraint("assessment_id", "kode", name="uq_factor_assessment_kode"),
    )

    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parameter_id = db.Column(
        db.String(36), db.ForeignKey("assessment_parameters.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    max_score = db.Column(db.Float, nullable=False, default=1.0)

    def to_dict(self):
        d = self._base_dict()
        d.update({"parameter_id": self.parameter_id, "max_score": self.max_score})
        return d

    def __repr__(self):
        return f"<AssessmentFactor {self.kode}: {self.nama[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# Response
# ═════════════════════════════════════════════════════════════════════════════

class Response(db.Model):
    """Raw score for one factor. At most one row per (assessment, factor)."""

    __tablename__ = "responses"
    __table_args__ = (
        db.UniqueConstraint("assessment_id", "factor_id", name="uq_response_assessment_factor"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    factor_id = db.Column(
        db.String(36), db.ForeignKey("assessment_factors.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    score = db.Column(db.Float, nullable=False, default=0.0)
    comment = db.Column(db.Text, default="")
    created_by = db.Column(db.String(36), nullable=True)
    updated_by = db.Column(db.String(36), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "factor_id": self.factor_id,
            "score": self.score,
            "comment": self.comment,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Response {self.factor_id[:8]} = {self.score}>"


# ═════════════════════════════════════════════════════════════════════════════
# Revision request
# ═════════════════════════════════════════════════════════════════════════════

class AssessmentRevision(db.Model):
    """A reviewer's request to rework a submitted assessment."""

    __tablename__ = "assessment_revisions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    assessment_id = db.Column(
        db.String(36), db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    requested_by = db.Column(db.String(36), nullable=False)
    note = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="pending")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "requested_by": self.requested_by,
            "note": self.note,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
