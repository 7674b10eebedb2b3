"""
GCG Assessment Platform
Assignment-based access control predicates.

Three axes decide who may read or write which part of an assessment:

  role        admin bypasses every check (including the evidence gate)
  ownership   the assessment's creator or named assessor
  assignment  the directly assigned user, or any member of the assigned
              unit, on the exact (assessment, target_type, target_id) tuple

Derived rules:
  - assessment view: ownership OR any PIC row of the assessment naming
    the user or the user's unit
  - factor view: ownership OR assignment on the factor
  - response write: assignment on the factor AND ≥1 evidence attachment
    (owners are not exempt from either)
  - AOI access: ownership OR assignment on the AOI itself OR on its target

Every predicate returns an ``AccessDecision``; the ``require_*`` variants
raise ``PermissionDenied``. A missing assessment and a forbidden one always
produce the same decision, so callers cannot tell whether it exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select

from gcg_platform.core.exceptions import PermissionDenied
from gcg_platform.models.aoi import Aoi
from gcg_platform.models.hierarchy import Assessment, AssessmentFactor
from gcg_platform.models.pic import PicAssignment

logger = logging.getLogger(__name__)

REASON_ADMIN = "admin"
REASON_OWNER = "owner"
REASON_ASSIGNED = "assigned"
REASON_DENIED = "denied"
REASON_EVIDENCE_REQUIRED = "evidence_required"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


_DENY = AccessDecision(False, REASON_DENIED)


class AccessControl:
    """Access predicates bound to one session and its collaborators.

    Usage:
        acl = AccessControl(db.session, identity_gateway, evidence_gateway)
        if acl.can_view_assessment(user_id, assessment_id):
            ...
        acl.require_response_write(user_id, assessment_id, factor_id)
    """

    def __init__(self, session, identity, evidence) -> None:
        self.session = session
        self.identity = identity
        self.evidence = evidence

    # ── Lookups ───────────────────────────────────────────────────────────

    def _assessment(self, assessment_id):
        if not assessment_id:
            return None
        return self.session.get(Assessment, assessment_id)

    def _assigned(self, ident, assessment_id, target_type, target_id) -> bool:
        row = self.session.execute(
            select(PicAssignment).where(
                PicAssignment.assessment_id == assessment_id,
                PicAssignment.target_type == target_type,
                PicAssignment.target_id == target_id,
            )
        ).scalar_one_or_none()
        return row is not None and row.names(ident.user_id, ident.unit_id)

    def _named_anywhere(self, ident, assessment_id) -> bool:
        clauses = [PicAssignment.user_id == ident.user_id]
        if ident.unit_id:
            clauses.append(PicAssignment.unit_id == ident.unit_id)
        row = self.session.execute(
            select(PicAssignment.id)
            .where(PicAssignment.assessment_id == assessment_id, or_(*clauses))
            .limit(1)
        ).first()
        return row is not None

    def _factor_in(self, assessment_id, factor_id) -> bool:
        factor = self.session.get(AssessmentFactor, factor_id) if factor_id else None
        return factor is not None and factor.assessment_id == assessment_id

    # ── Predicates ────────────────────────────────────────────────────────

    def is_admin(self, user_id) -> bool:
        ident = self.identity.get_identity(user_id)
        return ident is not None and ident.is_admin

    def is_owner(self, user_id, assessment_id) -> bool:
        assessment = self._assessment(assessment_id)
        return assessment is not None and assessment.is_owned_by(user_id)

    def can_view_assessment(self, user_id, assessment_id) -> AccessDecision:
        ident = self.identity.get_identity(user_id)
        assessment = self._assessment(assessment_id)
        if ident is None or assessment is None:
            return _DENY
        if ident.is_admin:
            return AccessDecision(True, REASON_ADMIN)
        if assessment.is_owned_by(ident.user_id):
            return AccessDecision(True, REASON_OWNER)
        if self._named_anywhere(ident, assessment.id):
            return AccessDecision(True, REASON_ASSIGNED)
        return _DENY

    def can_manage_assessment(self, user_id, assessment_id) -> AccessDecision:
        """Structural changes (assignments, AOI generation, status): owner or admin."""
        ident = self.identity.get_identity(user_id)
        assessment = self._assessment(assessment_id)
        if ident is None or assessment is None:
            return _DENY
        if ident.is_admin:
            return AccessDecision(True, REASON_ADMIN)
        if assessment.is_owned_by(ident.user_id):
            return AccessDecision(True, REASON_OWNER)
        return _DENY

    def can_access_target(self, user_id, assessment_id, target_type, target_id) -> AccessDecision:
        ident = self.identity.get_identity(user_id)
        assessment = self._assessment(assessment_id)
        if ident is None or assessment is None:
            return _DENY
        if ident.is_admin:
            return AccessDecision(True, REASON_ADMIN)
        if assessment.is_owned_by(ident.user_id):
            return AccessDecision(True, REASON_OWNER)
        if self._assigned(ident, assessment.id, target_type, target_id):
            return AccessDecision(True, REASON_ASSIGNED)
        return _DENY

    def can_view_factor(self, user_id, assessment_id, factor_id) -> AccessDecision:
        return self.can_access_target(user_id, assessment_id, "factor", factor_id)

    def can_write_response(self, user_id, assessment_id, factor_id) -> AccessDecision:
        ident = self.identity.get_identity(user_id)
        assessment = self._assessment(assessment_id)
        if ident is None or assessment is None:
            return _DENY
        if ident.is_admin:
            return AccessDecision(True, REASON_ADMIN)
        if not self._factor_in(assessment.id, factor_id):
            return _DENY
        if not self._assigned(ident, assessment.id, "factor", factor_id):
            return _DENY
        if self.evidence.count("factor", factor_id) < 1:
            return AccessDecision(False, REASON_EVIDENCE_REQUIRED)
        return AccessDecision(True, REASON_ASSIGNED)

    def can_access_aoi(self, user_id, aoi) -> AccessDecision:
        if aoi is None:
            return _DENY
        ident = self.identity.get_identity(user_id)
        assessment = self._assessment(aoi.assessment_id)
        if ident is None or assessment is None:
            return _DENY
        if ident.is_admin:
            return AccessDecision(True, REASON_ADMIN)
        if assessment.is_owned_by(ident.user_id):
            return AccessDecision(True, REASON_OWNER)
        if self._assigned(ident, assessment.id, "aoi", aoi.id):
            return AccessDecision(True, REASON_ASSIGNED)
        if aoi.target_type in ("factor", "parameter") and self._assigned(
            ident, assessment.id, aoi.target_type, aoi.target_id
        ):
            return AccessDecision(True, REASON_ASSIGNED)
        return _DENY

    def visible_assessment_ids(self, user_id) -> set[str]:
        """Ids of the active assessments the user may view."""
        ident = self.identity.get_identity(user_id)
        if ident is None:
            return set()
        active = select(Assessment.id).where(Assessment.is_active.is_(True))
        if ident.is_admin:
            return set(self.session.execute(active).scalars())

        owned = active.where(
            or_(Assessment.created_by == ident.user_id, Assessment.assessor_id == ident.user_id)
        )
        ids = set(self.session.execute(owned).scalars())

        clauses = [PicAssignment.user_id == ident.user_id]
        if ident.unit_id:
            clauses.append(PicAssignment.unit_id == ident.unit_id)
        assigned = (
            select(PicAssignment.assessment_id)
            .join(Assessment, Assessment.id == PicAssignment.assessment_id)
            .where(Assessment.is_active.is_(True), or_(*clauses))
            .distinct()
        )
        ids.update(self.session.execute(assigned).scalars())
        return ids

    def visible_aois(self, user_id, assessment_id) -> list[Aoi]:
        """Active AOIs of the assessment the user may access."""
        aois = self.session.execute(
            select(Aoi).where(Aoi.assessment_id == assessment_id, Aoi.is_active.is_(True))
            .order_by(Aoi.created_at)
        ).scalars().all()
        return [a for a in aois if self.can_access_aoi(user_id, a)]

    # ── Raising variants ──────────────────────────────────────────────────

    @staticmethod
    def _require(decision: AccessDecision, resource: str, action: str) -> AccessDecision:
        if not decision.allowed:
            logger.info("Access denied: %s %s (%s)", action, resource, decision.reason)
            raise PermissionDenied(resource=resource, action=action)
        return decision

    def require_view_assessment(self, user_id, assessment_id):
        return self._require(self.can_view_assessment(user_id, assessment_id), "assessment", "view")

    def require_manage_assessment(self, user_id, assessment_id):
        return self._require(self.can_manage_assessment(user_id, assessment_id), "assessment", "manage")

    def require_view_factor(self, user_id, assessment_id, factor_id):
        return self._require(self.can_view_factor(user_id, assessment_id, factor_id), "factor", "view")

    def require_response_write(self, user_id, assessment_id, factor_id):
        return self._require(
            self.can_write_response(user_id, assessment_id, factor_id), "response", "write",
        )

    def require_aoi_access(self, user_id, aoi):
        return self._require(self.can_access_aoi(user_id, aoi), "aoi", "access")
