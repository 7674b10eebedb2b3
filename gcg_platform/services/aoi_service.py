"""
GCG Assessment Platform
Area of Improvement (AOI) Service.

Generation rule:
  A KKA whose rolled-up raw score is below the threshold (default 0.5) may
  get exactly one generated AOI:

    nama            "Perbaikan {KKA nama}"
    recommendation  mentions the KKA percentage and the target minimum
    due_date        today + AOI_DUE_DAYS (default 90)
    priority        percentage < 25 → critical, < 35 → high, else medium

  Generating twice for the same KKA raises ConflictError and leaves the
  first AOI untouched.

Lifecycle (see ``AOI_TRANSITIONS``):
  open → in_progress | completed
  in_progress → completed | overdue
  overdue → in_progress | completed
  ``verifikasi`` is accepted as an alias of in_progress.

AOIs are never deleted; ``archive`` hides them from lists and stats.

Notifications:
  Generation and status transitions notify every PIC party assigned to
  the AOI itself or to what it covers (a factor, a parameter, or every
  parameter and factor under a KKA). Dispatch runs after commit.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError

from gcg_platform.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from gcg_platform.models.aoi import (
    AOI_PRIORITIES,
    AOI_STATUSES,
    AOI_TARGET_TYPES,
    Aoi,
    normalize_aoi_status,
)
from gcg_platform.models.hierarchy import (
    AssessmentAspect,
    AssessmentFactor,
    AssessmentKka,
    AssessmentParameter,
)
from gcg_platform.models.pic import PicAssignment
from gcg_platform.utils.helpers import parse_date

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5
DEFAULT_DUE_DAYS = 90

_TARGET_MODELS = {
    "kka": AssessmentKka,
    "parameter": AssessmentParameter,
    "factor": AssessmentFactor,
}


def priority_for(percentage: float) -> str:
    if percentage < 25:
        return "critical"
    if percentage < 35:
        return "high"
    return "medium"


class AoiService:
    """AOI generation and lifecycle."""

    def __init__(self, session, scoring, access, notifications=None,
                 threshold: float = DEFAULT_THRESHOLD, due_days: int = DEFAULT_DUE_DAYS) -> None:
        self.session = session
        self.scoring = scoring
        self.access = access
        self.notifications = notifications
        self.threshold = threshold
        self.due_days = due_days

    # ── Helpers ──────────────────────────────────────────────────────────

    def _load(self, aoi_id, user_id, *, manage=False):
        aoi = self.session.get(Aoi, aoi_id) if aoi_id else None
        if aoi is None:
            if self.access.is_admin(user_id):
                raise NotFoundError(resource="Aoi", resource_id=aoi_id)
            raise PermissionDenied(resource="aoi", action="manage" if manage else "access")
        if manage:
            if not self.access.can_manage_assessment(user_id, aoi.assessment_id):
                raise PermissionDenied(resource="aoi", action="manage")
        else:
            self.access.require_aoi_access(user_id, aoi)
        return aoi

    def _existing_for_kka(self, assessment_id, kka_id):
        return self.session.execute(
            select(Aoi).where(Aoi.assessment_id == assessment_id, Aoi.kka_id == kka_id).limit(1)
        ).scalar_one_or_none()

    def _check_target(self, assessment_id, target_type, target_id):
        if target_type not in AOI_TARGET_TYPES:
            raise ValidationError(
                f"target_type must be one of {sorted(AOI_TARGET_TYPES)}",
                details={"target_type": "invalid"},
            )
        target = self.session.get(_TARGET_MODELS[target_type], target_id) if target_id else None
        if target is None or target.assessment_id != assessment_id:
            raise InvalidReferenceError(
                resource=target_type, resource_id=target_id, scope=f"assessment {assessment_id}",
            )
        return target

    @staticmethod
    def _priority(value):
        priority = (value or "medium").strip().lower()
        if priority not in AOI_PRIORITIES:
            raise ValidationError(f"Invalid priority: {value}", details={"priority": "invalid"})
        return priority

    @staticmethod
    def _due_date(value):
        if value in (None, ""):
            return None
        parsed = parse_date(value)
        if parsed is None:
            raise ValidationError("due_date is not a valid date", details={"due_date": "invalid"})
        return parsed

    def _commit(self):
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _parties(self, aoi):
        """(user_id, unit_id) pairs assigned to the AOI or to what it covers."""
        clauses = [and_(PicAssignment.target_type == "aoi", PicAssignment.target_id == aoi.id)]
        if aoi.target_type in ("factor", "parameter"):
            clauses.append(and_(
                PicAssignment.target_type == aoi.target_type,
                PicAssignment.target_id == aoi.target_id,
            ))
        elif aoi.target_type == "kka":
            params = (
                select(AssessmentParameter.id)
                .join(AssessmentAspect, AssessmentAspect.id == AssessmentParameter.aspect_id)
                .where(AssessmentAspect.kka_id == (aoi.kka_id or aoi.target_id))
            )
            factors = select(AssessmentFactor.id).where(AssessmentFactor.parameter_id.in_(params))
            clauses.append(and_(PicAssignment.target_type == "parameter", PicAssignment.target_id.in_(params)))
            clauses.append(and_(PicAssignment.target_type == "factor", PicAssignment.target_id.in_(factors)))
        rows = self.session.execute(
            select(PicAssignment).where(PicAssignment.assessment_id == aoi.assessment_id, or_(*clauses))
        ).scalars()
        return sorted({(r.user_id, r.unit_id) for r in rows}, key=lambda p: (p[0] or "", p[1] or ""))

    def _outbox(self, aoi, title, message):
        if self.notifications is None:
            return None
        outbox = self.notifications.outbox()
        for user_id, unit_id in self._parties(aoi):
            outbox.add(
                user_id=user_id,
                unit_id=unit_id,
                title=title,
                message=message,
                category="aoi",
                assessment_id=aoi.assessment_id,
            )
        return outbox

    def _dispatch(self, outbox):
        if outbox is not None:
            self.notifications.dispatch(outbox)

    # ── Generation ───────────────────────────────────────────────────────

    def list_candidates(self, assessment_id, user_id):
        """KKAs scoring below the threshold, with whether an AOI already exists."""
        self.access.require_view_assessment(user_id, assessment_id)
        kkas = self.session.execute(
            select(AssessmentKka)
            .where(AssessmentKka.assessment_id == assessment_id, AssessmentKka.is_active.is_(True))
            .order_by(AssessmentKka.sort, AssessmentKka.kode)
        ).scalars().all()
        candidates = []
        for kka in kkas:
            score = self.scoring.kka_score(assessment_id, kka.id)
            if score["raw_score"] < self.threshold:
                candidates.append({
                    "kka_id": kka.id,
                    "kode": kka.kode,
                    "nama": kka.nama,
                    "raw_score": score["raw_score"],
                    "percentage": score["percentage"],
                    "has_aoi": self._existing_for_kka(assessment_id, kka.id) is not None,
                })
        return candidates

    def generate_for_kka(self, assessment_id, kka_id, user_id, threshold=None):
        """Create the improvement item for an under-performing KKA.

        Raises:
            PermissionDenied: caller is neither owner nor admin.
            NotFoundError: KKA is not part of the assessment.
            ValidationError: KKA score is not below the threshold.
            ConflictError: an AOI already exists for the KKA.
        """
        threshold = self.threshold if threshold is None else threshold
        self.access.require_manage_assessment(user_id, assessment_id)

        score = self.scoring.kka_score(assessment_id, kka_id)
        if score["raw_score"] >= threshold:
            raise ValidationError(
                f"KKA score {score['raw_score']:.2f} is not below {threshold}, no AOI needed",
                details={"raw_score": score["raw_score"]},
            )
        if self._existing_for_kka(assessment_id, kka_id) is not None:
            raise ConflictError(resource="Aoi", field="kka_id", value=kka_id)

        pct = score["percentage"]
        aoi = Aoi(
            assessment_id=assessment_id,
            kka_id=kka_id,
            target_type="kka",
            target_id=kka_id,
            nama=f"Perbaikan {score['nama']}",
            recommendation=(
                f"KKA {score['nama']} memiliki skor {pct}% yang masih di bawah standar. "
                f"Perlu dilakukan perbaikan untuk meningkatkan skor menjadi minimal {threshold * 100:.0f}%."
            ),
            due_date=date.today() + timedelta(days=self.due_days),
            status="open",
            priority=priority_for(pct),
            created_by=user_id,
        )
        self.session.add(aoi)
        try:
            self.session.flush()
            outbox = self._outbox(aoi, f"AOI baru: {aoi.nama}", aoi.recommendation)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(resource="Aoi", field="kka_id", value=kka_id) from exc
        except Exception:
            self.session.rollback()
            raise
        self._dispatch(outbox)
        logger.info("AOI %s generated for KKA %s (%s%%, %s)", aoi.id, kka_id, pct, aoi.priority)
        return aoi

    # ── CRUD ─────────────────────────────────────────────────────────────

    def create_aoi(self, assessment_id, data, user_id):
        """Manual AOI on a KKA, parameter or factor of the assessment."""
        self.access.require_manage_assessment(user_id, assessment_id)
        target_type = data.get("target_type")
        target_id = data.get("target_id")
        self._check_target(assessment_id, target_type, target_id)

        recommendation = (data.get("recommendation") or "").strip()
        if not recommendation:
            raise ValidationError("recommendation is required", details={"recommendation": "required"})

        aoi = Aoi(
            assessment_id=assessment_id,
            kka_id=None,
            target_type=target_type,
            target_id=target_id,
            nama=(data.get("nama") or "").strip()[:300],
            recommendation=recommendation,
            due_date=self._due_date(data.get("due_date")),
            priority=self._priority(data.get("priority")),
            status="open",
            created_by=user_id,
        )
        self.session.add(aoi)
        self._commit()
        logger.info("AOI %s created on %s %s", aoi.id, target_type, target_id)
        return aoi

    def get(self, aoi_id, user_id):
        return self._load(aoi_id, user_id)

    def list_for_assessment(self, assessment_id, user_id, include_archived=False):
        self.access.require_view_assessment(user_id, assessment_id)
        if not include_archived:
            return self.access.visible_aois(user_id, assessment_id)
        aois = self.session.execute(
            select(Aoi).where(Aoi.assessment_id == assessment_id).order_by(Aoi.created_at)
        ).scalars().all()
        return [a for a in aois if self.access.can_access_aoi(user_id, a)]

    def update_aoi(self, aoi_id, data, user_id):
        """Edit content fields. Status changes go through ``transition``."""
        aoi = self._load(aoi_id, user_id, manage=True)
        if "status" in data:
            raise ValidationError("Use transition() to change status", details={"status": "read-only"})
        if "recommendation" in data:
            text = (data.get("recommendation") or "").strip()
            if not text:
                raise ValidationError("recommendation is required", details={"recommendation": "required"})
            aoi.recommendation = text
        if "nama" in data:
            aoi.nama = (data.get("nama") or "").strip()[:300]
        if "priority" in data:
            aoi.priority = self._priority(data.get("priority"))
        if "due_date" in data:
            aoi.due_date = self._due_date(data.get("due_date"))
        self._commit()
        return aoi

    def transition(self, aoi_id, new_status, user_id):
        aoi = self._load(aoi_id, user_id)
        target = normalize_aoi_status(new_status)
        if target not in AOI_STATUSES:
            raise ValidationError(f"Unknown AOI status: {new_status}", details={"status": "invalid"})
        if not aoi.can_transition_to(target):
            raise ValidationError(
                f"Invalid transition: {aoi.status} → {target}",
                details={"from": aoi.status, "to": target},
            )
        old = aoi.status
        aoi.status = target
        if target == "completed":
            aoi.completed_at = datetime.now(timezone.utc)
        outbox = self._outbox(aoi, f"Status AOI: {aoi.nama or aoi.id[:8]}", f"Status berubah dari {old} ke {target}.")
        self._commit()
        self._dispatch(outbox)
        logger.info("AOI %s: %s → %s by %s", aoi.id, old, target, user_id)
        return aoi

    def archive(self, aoi_id, user_id):
        aoi = self._load(aoi_id, user_id, manage=True)
        aoi.is_active = False
        self._commit()
        logger.info("AOI %s archived by %s", aoi.id, user_id)
        return aoi

    # ── Sweeps & stats ───────────────────────────────────────────────────

    def mark_overdue(self, as_of=None, assessment_id=None):
        """Move past-due AOIs to overdue where the transition is allowed.

        Returns:
            Ids of the AOIs that changed.
        """
        as_of = as_of or date.today()
        stmt = select(Aoi).where(
            Aoi.is_active.is_(True),
            Aoi.due_date.is_not(None),
            Aoi.due_date < as_of,
            Aoi.status != "overdue",
        )
        if assessment_id:
            stmt = stmt.where(Aoi.assessment_id == assessment_id)
        changed = []
        for aoi in self.session.execute(stmt).scalars():
            if aoi.can_transition_to("overdue"):
                aoi.status = "overdue"
                changed.append(aoi.id)
        if changed:
            self._commit()
            logger.info("Marked %d AOI(s) overdue as of %s", len(changed), as_of)
        return changed

    def stats(self, assessment_id, user_id, as_of=None):
        self.access.require_view_assessment(user_id, assessment_id)
        aois = self.session.execute(
            select(Aoi).where(Aoi.assessment_id == assessment_id, Aoi.is_active.is_(True))
        ).scalars().all()
        by_status = Counter(a.status for a in aois)
        by_priority = Counter(a.priority for a in aois)
        return {
            "assessment_id": assessment_id,
            "total": len(aois),
            "by_status": {s: by_status.get(s, 0) for s in sorted(AOI_STATUSES)},
            "by_priority": {p: by_priority.get(p, 0) for p in sorted(AOI_PRIORITIES)},
            "past_due": sum(1 for a in aois if a.is_overdue(as_of)),
            "completion_rate": round(by_status.get("completed", 0) / len(aois) * 100, 1) if aois else 0.0,
        }
