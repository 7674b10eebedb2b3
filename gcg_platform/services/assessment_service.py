"""
GCG Assessment Platform
Assessment Workflow Service.

Status machine (ASSESSMENT_TRANSITIONS):
  draft             → in_progress
  in_progress       → submitted | draft
  submitted         → under_review | revision_required
  under_review      → completed | revision_required
  revision_required → submitted | in_progress
  completed         → (terminal)

Only admins may complete an assessment. A revision request records an
AssessmentRevision, moves the assessment to revision_required and notifies
every assigned party; completing the revision moves it back to submitted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from gcg_platform.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from gcg_platform.models.hierarchy import (
    ASSESSMENT_STATUSES,
    ASSESSMENT_TRANSITIONS,
    Assessment,
    AssessmentRevision,
)
from gcg_platform.models.pic import PicAssignment

logger = logging.getLogger(__name__)


def validate_transition(current: str, target: str) -> None:
    if target not in ASSESSMENT_STATUSES:
        raise ValidationError(f"Unknown assessment status: {target}", details={"status": "invalid"})
    if target not in ASSESSMENT_TRANSITIONS.get(current, set()):
        raise ValidationError(
            f"Invalid transition: {current} → {target}",
            details={"from": current, "to": target},
        )


class AssessmentService:
    """Assessment reads and status workflow."""

    def __init__(self, session, access, notifications=None) -> None:
        self.session = session
        self.access = access
        self.notifications = notifications

    def _commit(self):
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, assessment_id, user_id):
        self.access.require_view_assessment(user_id, assessment_id)
        return self.session.get(Assessment, assessment_id)

    def list_for_user(self, user_id):
        ids = self.access.visible_assessment_ids(user_id)
        if not ids:
            return []
        return self.session.execute(
            select(Assessment).where(Assessment.id.in_(ids)).order_by(Assessment.created_at.desc())
        ).scalars().all()

    def list_revisions(self, assessment_id, user_id):
        self.access.require_view_assessment(user_id, assessment_id)
        return self.session.execute(
            select(AssessmentRevision)
            .where(AssessmentRevision.assessment_id == assessment_id)
            .order_by(AssessmentRevision.created_at.desc())
        ).scalars().all()

    # ── Status ───────────────────────────────────────────────────────────

    def change_status(self, assessment_id, new_status, user_id):
        self.access.require_manage_assessment(user_id, assessment_id)
        assessment = self.session.get(Assessment, assessment_id)
        validate_transition(assessment.status, new_status)
        if new_status == "completed" and not self.access.is_admin(user_id):
            raise PermissionDenied(resource="assessment", action="complete")

        old = assessment.status
        assessment.status = new_status
        self._commit()
        logger.info("Assessment %s: %s → %s by %s", assessment_id, old, new_status, user_id)
        return assessment

    def archive(self, assessment_id, user_id):
        self.access.require_manage_assessment(user_id, assessment_id)
        assessment = self.session.get(Assessment, assessment_id)
        assessment.is_active = False
        self._commit()
        return assessment

    # ── Revisions ────────────────────────────────────────────────────────

    def request_revision(self, assessment_id, user_id, note=""):
        self.access.require_manage_assessment(user_id, assessment_id)
        assessment = self.session.get(Assessment, assessment_id)
        validate_transition(assessment.status, "revision_required")

        outbox = self.notifications.outbox() if self.notifications else None
        revision = AssessmentRevision(
            assessment_id=assessment_id,
            requested_by=user_id,
            note=note or "",
            status="pending",
        )
        self.session.add(revision)
        assessment.status = "revision_required"

        if outbox is not None:
            assignments = self.session.execute(
                select(PicAssignment).where(PicAssignment.assessment_id == assessment_id)
            ).scalars()
            parties = {(a.user_id, a.unit_id) for a in assignments}
            for pic_user, unit_id in sorted(parties, key=lambda p: (p[0] or "", p[1] or "")):
                outbox.add(
                    user_id=pic_user,
                    unit_id=unit_id,
                    title=f"Permintaan revisi: {assessment.title}",
                    message=note or "Assessment memerlukan revisi.",
                    category="revision",
                    assessment_id=assessment_id,
                )

        self._commit()
        logger.info("Revision requested for assessment %s by %s", assessment_id, user_id)
        if outbox is not None:
            self.notifications.dispatch(outbox)
        return revision

    def complete_revision(self, assessment_id, revision_id, user_id):
        self.access.require_view_assessment(user_id, assessment_id)
        revision = self.session.get(AssessmentRevision, revision_id) if revision_id else None
        if revision is None or revision.assessment_id != assessment_id:
            raise NotFoundError(resource="AssessmentRevision", resource_id=revision_id)
        if revision.status != "pending":
            raise ValidationError("Revision is already completed", details={"status": revision.status})

        assessment = self.session.get(Assessment, assessment_id)
        validate_transition(assessment.status, "submitted")
        revision.status = "completed"
        revision.completed_at = datetime.now(timezone.utc)
        assessment.status = "submitted"
        self._commit()
        logger.info("Revision %s completed for assessment %s", revision_id, assessment_id)
        return revision
