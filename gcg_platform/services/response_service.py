"""
GCG Assessment Platform
Response Service.

One Response per (assessment, factor). Writes are update-if-exists-else-
insert; the ``uq_response_assessment_factor`` constraint is the backstop
for two writers racing on the same factor: when the commit fails on it,
the transaction is rolled back and the write is retried once, which then
finds the winner's row and updates it.

Factor ids must be *stored* ids. Callers holding the ids they sent to the
hierarchy builder go through ``submit_manual_responses`` with the builder's
id map; ``list_client_responses`` translates back.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from gcg_platform.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from gcg_platform.models.hierarchy import Assessment, AssessmentFactor, Response

logger = logging.getLogger(__name__)

# Assessments in these statuses no longer accept score changes.
LOCKED_STATUSES = {"under_review", "completed"}


def _score(value, factor) -> float:
    if isinstance(value, bool) or value is None:
        raise ValidationError("score must be a number", details={"score": "required"})
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValidationError("score must be a number", details={"score": "not a number"}) from None
    max_score = float(factor.max_score or 1.0)
    if score < 0 or score > max_score:
        raise ValidationError(
            f"score must be between 0 and {max_score:g}",
            details={"score": "out of range", "factor_id": factor.id},
        )
    return score


class ResponseService:
    """Factor score writes and reads.

    ``access`` is optional: when given, every write runs through
    ``AccessControl.require_response_write`` before the assessment is
    looked up, so a missing, forbidden or locked assessment looks the same
    to a caller without write access. Reads require assessment view.
    """

    def __init__(self, session, access=None) -> None:
        self.session = session
        self.access = access

    # ── Helpers ──────────────────────────────────────────────────────────

    def _assessment(self, assessment_id):
        assessment = self.session.get(Assessment, assessment_id) if assessment_id else None
        if assessment is None:
            raise NotFoundError(resource="Assessment", resource_id=assessment_id)
        if assessment.status in LOCKED_STATUSES:
            raise ValidationError(
                f"Assessment is {assessment.status}; responses are locked",
                details={"status": assessment.status},
            )
        return assessment

    def _factor(self, assessment_id, factor_id):
        factor = self.session.get(AssessmentFactor, factor_id) if factor_id else None
        if factor is None or factor.assessment_id != assessment_id:
            raise InvalidReferenceError(
                resource="factor", resource_id=factor_id, scope=f"assessment {assessment_id}",
            )
        return factor

    def _existing(self, assessment_id, factor_id):
        return self.session.execute(
            select(Response).where(
                Response.assessment_id == assessment_id,
                Response.factor_id == factor_id,
            )
        ).scalar_one_or_none()

    def _require_write(self, assessment_id, factor_id, user_id):
        # Admins skip the gate; a missing assessment then raises NotFoundError.
        if self.access is not None and not self.access.is_admin(user_id):
            self.access.require_response_write(user_id, assessment_id, factor_id)

    def _require_view(self, assessment_id, user_id):
        if self.access is not None:
            self.access.require_view_assessment(user_id, assessment_id)

    def _write(self, assessment_id, factor_id, score, comment, user_id):
        factor = self._factor(assessment_id, factor_id)
        score = _score(score, factor)

        row = self._existing(assessment_id, factor.id)
        if row is None:
            row = Response(assessment_id=assessment_id, factor_id=factor.id, created_by=user_id)
            self.session.add(row)
        row.score = score
        row.comment = comment or ""
        row.updated_by = user_id
        self.session.flush()
        return row

    def _transaction(self, work):
        """Run ``work`` and commit; one retry when the unique backstop fires."""
        for attempt in (1, 2):
            try:
                result = work()
                self.session.commit()
                return result
            except IntegrityError as exc:
                self.session.rollback()
                if attempt == 2:
                    raise ConflictError(resource="Response", field="factor_id") from exc
                logger.info("Concurrent response insert detected, retrying as update")
            except Exception:
                self.session.rollback()
                raise

    # ── Writes ───────────────────────────────────────────────────────────

    def submit_response(self, assessment_id, factor_id, score, user_id, comment=""):
        """Create or update the response of one factor (stored factor id)."""
        def work():
            self._require_write(assessment_id, factor_id, user_id)
            self._assessment(assessment_id)
            return self._write(assessment_id, factor_id, score, comment, user_id)

        row = self._transaction(work)
        logger.info("Response saved: assessment=%s factor=%s score=%s", assessment_id, factor_id, row.score)
        return row

    def submit_responses(self, assessment_id, items, user_id):
        """Batch variant of ``submit_response``. All-or-nothing.

        Args:
            items: iterable of {"factor_id", "score", "comment"?} dicts.
        """
        items = list(items)

        def work():
            if not items:
                self._require_view(assessment_id, user_id)
            for item in items:
                self._require_write(assessment_id, item.get("factor_id"), user_id)
            self._assessment(assessment_id)
            return [
                self._write(assessment_id, item.get("factor_id"), item.get("score"),
                            item.get("comment"), user_id)
                for item in items
            ]

        rows = self._transaction(work)
        logger.info("Saved %d response(s) for assessment %s", len(rows), assessment_id)
        return rows

    def submit_manual_responses(self, assessment_id, responses, id_map, user_id):
        """Save responses keyed by the caller's factor ids.

        ``id_map`` is the builder's map (or just its ``"factor"`` part).
        Entries whose factor id is not in the map are skipped with a warning.

        Returns:
            {"saved": int, "skipped": [caller ids]}
        """
        factor_map = id_map.get("factor", id_map) if isinstance(id_map, dict) else {}
        items = []
        skipped = []
        for entry in responses or []:
            caller_id = str(entry.get("factor_id", ""))
            stored = factor_map.get(caller_id)
            if not stored:
                logger.warning("Factor id %s not found in mapping, skipping response", caller_id)
                skipped.append(caller_id)
                continue
            items.append({**entry, "factor_id": stored})

        rows = self.submit_responses(assessment_id, items, user_id) if items else []
        return {"saved": len(rows), "skipped": skipped}

    # ── Reads ────────────────────────────────────────────────────────────

    def list_responses(self, assessment_id, user_id):
        self._require_view(assessment_id, user_id)
        return self.session.execute(
            select(Response).where(Response.assessment_id == assessment_id)
            .order_by(Response.created_at)
        ).scalars().all()

    def list_client_responses(self, assessment_id, user_id):
        """Responses with the caller's factor id restored (stored id when none)."""
        self._require_view(assessment_id, user_id)
        rows = self.session.execute(
            select(Response, AssessmentFactor)
            .join(AssessmentFactor, AssessmentFactor.id == Response.factor_id)
            .where(Response.assessment_id == assessment_id)
            .order_by(AssessmentFactor.kode)
        ).all()
        return [
            {
                "factor_id": factor.client_id or factor.id,
                "stored_factor_id": factor.id,
                "kode": factor.kode,
                "score": response.score,
                "comment": response.comment,
            }
            for response, factor in rows
        ]
