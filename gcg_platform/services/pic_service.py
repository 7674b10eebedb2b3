"""
GCG Assessment Platform
PIC Assignment Service.

Assigns a responsible unit and/or user to a factor, parameter or AOI of
one assessment. (assessment_id, target_type, target_id) holds at most one
assignment: assigning again overwrites the unit/user pair and resets the
assignment status.

Rules:
  - only the assessment's owner or an admin assigns or removes
  - the target must exist inside the same assessment
  - the first assignment moves a draft assessment to in_progress
  - assigned parties are notified after commit; delivery problems are
    logged, never raised
  - the assigned party may only set in_progress / submitted /
    needs_revision on their own assignment; owner and admin may set any
    status
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select

from gcg_platform.core.exceptions import (
    InvalidReferenceError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from gcg_platform.models.aoi import Aoi
from gcg_platform.models.hierarchy import Assessment, AssessmentFactor, AssessmentParameter
from gcg_platform.models.pic import (
    PIC_SELF_SERVICE_STATUSES,
    PIC_STATUSES,
    PIC_TARGET_TYPES,
    PicAssignment,
)

logger = logging.getLogger(__name__)

_TARGET_MODELS = {
    "factor": AssessmentFactor,
    "parameter": AssessmentParameter,
    "aoi": Aoi,
}


class PicService:
    """PIC assignment lifecycle."""

    def __init__(self, session, identity, access, notifications=None) -> None:
        self.session = session
        self.identity = identity
        self.access = access
        self.notifications = notifications

    # ── Validation ───────────────────────────────────────────────────────

    def _assessment(self, assessment_id, user_id):
        self.access.require_manage_assessment(user_id, assessment_id)
        return self.session.get(Assessment, assessment_id)

    def _check_target(self, assessment_id, target_type, target_id):
        if target_type not in PIC_TARGET_TYPES:
            raise ValidationError(
                f"target_type must be one of {sorted(PIC_TARGET_TYPES)}",
                details={"target_type": "invalid"},
            )
        model = _TARGET_MODELS[target_type]
        target = self.session.get(model, target_id) if target_id else None
        if target is None or target.assessment_id != assessment_id:
            raise InvalidReferenceError(
                resource=target_type, resource_id=target_id, scope=f"assessment {assessment_id}",
            )
        return target

    def _check_party(self, unit_id, user_id):
        if not unit_id and not user_id:
            raise ValidationError("unit_id or user_id is required", details={"unit_id": "required"})
        if unit_id and not self.identity.unit_exists(unit_id):
            raise InvalidReferenceError(resource="unit", resource_id=unit_id)
        if user_id and self.identity.get_identity(user_id) is None:
            raise InvalidReferenceError(resource="user", resource_id=user_id)

    # ── Core upsert ──────────────────────────────────────────────────────

    def _upsert(self, assessment, target_type, target_id, unit_id, user_id, assigned_by, outbox):
        self._check_target(assessment.id, target_type, target_id)
        self._check_party(unit_id, user_id)

        row = self.session.execute(
            select(PicAssignment).where(
                PicAssignment.assessment_id == assessment.id,
                PicAssignment.target_type == target_type,
                PicAssignment.target_id == target_id,
            )
        ).scalar_one_or_none()
        if row is None:
            row = PicAssignment(assessment_id=assessment.id, target_type=target_type, target_id=target_id)
            self.session.add(row)
        row.unit_id = unit_id or None
        row.user_id = user_id or None
        row.status = "assigned"
        row.assigned_by = assigned_by
        row.assigned_at = datetime.now(timezone.utc)
        self.session.flush()

        if outbox is not None:
            outbox.add(
                user_id=row.user_id,
                unit_id=row.unit_id,
                title=f"Penugasan PIC: {assessment.title}",
                message=f"Anda ditugaskan sebagai PIC untuk {target_type} {target_id}.",
                category="assignment",
                assessment_id=assessment.id,
            )
        return row

    def _finish(self, assessment, outbox):
        if assessment.status == "draft":
            assessment.status = "in_progress"
            logger.info("Assessment %s moved to in_progress by PIC assignment", assessment.id)
        self.session.commit()
        if outbox is not None:
            self.notifications.dispatch(outbox)

    # ── Public API ───────────────────────────────────────────────────────

    def assign(self, assessment_id, target_type, target_id, unit_id=None, user_id=None, assigned_by=None):
        outbox = self.notifications.outbox() if self.notifications else None
        try:
            assessment = self._assessment(assessment_id, assigned_by)
            row = self._upsert(assessment, target_type, target_id, unit_id, user_id, assigned_by, outbox)
            self._finish(assessment, outbox)
        except Exception:
            self.session.rollback()
            raise
        return row

    def bulk_assign(self, assessment_id, assignments, assigned_by):
        """Assign many targets in one transaction. Any failure rolls back all.

        Args:
            assignments: iterable of dicts with ``target_type`` (default
                "factor"), ``target_id`` (or ``factor_id``), ``unit_id``,
                ``user_id``.
        """
        outbox = self.notifications.outbox() if self.notifications else None
        rows = []
        try:
            assessment = self._assessment(assessment_id, assigned_by)
            for item in assignments or []:
                rows.append(self._upsert(
                    assessment,
                    item.get("target_type", "factor"),
                    item.get("target_id") or item.get("factor_id"),
                    item.get("unit_id"),
                    item.get("user_id"),
                    assigned_by,
                    outbox,
                ))
            if not rows:
                raise ValidationError("No assignments given", details={"assignments": "empty"})
            self._finish(assessment, outbox)
        except Exception:
            self.session.rollback()
            raise
        logger.info("Assigned %d PIC row(s) on assessment %s", len(rows), assessment_id)
        return rows

    def remove(self, assignment_id, user_id):
        row = self.session.get(PicAssignment, assignment_id) if assignment_id else None
        if row is None:
            raise NotFoundError(resource="PicAssignment", resource_id=assignment_id)
        self.access.require_manage_assessment(user_id, row.assessment_id)
        self.session.delete(row)
        self.session.commit()
        logger.info("PIC assignment %s removed by %s", assignment_id, user_id)

    def list_for_assessment(self, assessment_id, user_id):
        self.access.require_view_assessment(user_id, assessment_id)
        return self.session.execute(
            select(PicAssignment)
            .where(PicAssignment.assessment_id == assessment_id)
            .order_by(PicAssignment.target_type, PicAssignment.assigned_at)
        ).scalars().all()

    def list_for_user(self, user_id):
        """Assignments naming the user directly or through their unit."""
        ident = self.identity.get_identity(user_id)
        if ident is None:
            return []
        clauses = [PicAssignment.user_id == ident.user_id]
        if ident.unit_id:
            clauses.append(PicAssignment.unit_id == ident.unit_id)
        return self.session.execute(
            select(PicAssignment)
            .join(Assessment, Assessment.id == PicAssignment.assessment_id)
            .where(Assessment.is_active.is_(True), or_(*clauses))
            .order_by(PicAssignment.assigned_at.desc())
        ).scalars().all()

    def update_status(self, assignment_id, status, user_id):
        if status not in PIC_STATUSES:
            raise ValidationError(f"Invalid PIC status: {status}", details={"status": "invalid"})
        row = self.session.get(PicAssignment, assignment_id) if assignment_id else None
        if row is None:
            raise NotFoundError(resource="PicAssignment", resource_id=assignment_id)

        if not self.access.can_manage_assessment(user_id, row.assessment_id):
            ident = self.identity.get_identity(user_id)
            if ident is None or not row.names(ident.user_id, ident.unit_id):
                raise PermissionDenied(resource="assignment", action="update")
            if status not in PIC_SELF_SERVICE_STATUSES:
                raise PermissionDenied(resource="assignment", action=f"set {status} on")

        old = row.status
        row.status = status
        self.session.commit()
        logger.info("PIC %s status %s → %s by %s", assignment_id, old, status, user_id)
        return row
