"""
GCG Assessment Platform
Manual Hierarchy Builder.

Materializes a caller-supplied KKA → Aspect → Parameter → Factor tree under
one assessment inside a single transaction and reports how every
caller-supplied node id maps onto the stored id.

Identifier policy (validate-then-mint):
  - a caller id is reused as the stored id when it is a canonical UUID not
    already used by another stored row (or another node of this build)
  - anything else (``"f1"``, integers, duplicates of stored rows) gets a
    freshly minted UUID
  - the caller id is kept on the row as ``client_id`` either way

Every level is inserted and flushed in turn, parents before children. Any
failure rolls the whole tree back:

  ValidationError        missing/malformed field (title, weight, max_score)
  InvalidReferenceError  unknown assessment on rebuild, unknown PIC unit/user
  ConflictError          duplicate caller id within a level, DB uniqueness

Factor nodes may carry ``pic_unit_id`` / ``pic_user_id``. Each hint becomes
a PicAssignment in the same transaction; any hint moves a draft assessment
to in_progress, and the assigned parties are notified after commit.

Usage:
    builder = HierarchyBuilder(db.session, identity_gw, dictionary_gw, notifications)
    result = builder.build({"title": "GCG 2026"}, kkas, user_id="u-1")
    result.id_map["factor"]["f1"]  # → stored factor id
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from gcg_platform.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from gcg_platform.models.hierarchy import (
    Assessment,
    AssessmentAspect,
    AssessmentFactor,
    AssessmentKka,
    AssessmentParameter,
    Response,
)
from gcg_platform.models.pic import PicAssignment
from gcg_platform.utils.helpers import is_uuid, parse_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Level:
    name: str
    model: type
    prefix: str
    parent_fk: str | None
    children: str | None


LEVELS: tuple[_Level, ...] = (
    _Level("kka", AssessmentKka, "KKA", None, "aspects"),
    _Level("aspect", AssessmentAspect, "ASP", "kka_id", "parameters"),
    _Level("parameter", AssessmentParameter, "PAR", "aspect_id", "factors"),
    _Level("factor", AssessmentFactor, "FAC", "parameter_id", None),
)


@dataclass
class BuildResult:
    """Stored assessment plus caller-id → stored-id maps, one per level."""
    assessment: Assessment
    id_map: dict[str, dict[str, str]] = field(
        default_factory=lambda: {lvl.name: {} for lvl in LEVELS}
    )
    counts: dict[str, int] = field(default_factory=dict)
    pic_count: int = 0

    def to_dict(self) -> dict:
        return {
            "assessment": self.assessment.to_dict(),
            "id_map": self.id_map,
            "counts": self.counts,
            "pic_count": self.pic_count,
        }


# ── Field coercion ───────────────────────────────────────────────────────────

def _text(value) -> str:
    return str(value).strip() if value is not None else ""


def _number(node: dict, key: str, level: str, default: float, *, positive: bool = False) -> float:
    value = node.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{level} {key} must be a number", details={key: "not a number"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{level} {key} must be a number", details={key: "not a number"}) from None
    if number < 0 or (positive and number == 0):
        rule = "greater than 0" if positive else "non-negative"
        raise ValidationError(f"{level} {key} must be {rule}", details={key: rule})
    return number


def _children(node: dict, level: _Level) -> list:
    children = node.get(level.children)
    if children is None:
        return []
    if not isinstance(children, list):
        raise ValidationError(
            f"{level.prefix} {level.children} must be a list", details={level.children: "not a list"},
        )
    return children


# ═════════════════════════════════════════════════════════════════════════════
# Builder
# ═════════════════════════════════════════════════════════════════════════════


class HierarchyBuilder:
    """Transactional build/replace of an assessment hierarchy."""

    def __init__(self, session, identity, dictionary=None, notifications=None) -> None:
        self.session = session
        self.identity = identity
        self.dictionary = dictionary
        self.notifications = notifications

    # ── Public API ───────────────────────────────────────────────────────

    def build(self, shell: dict, kkas: list, user_id: str) -> BuildResult:
        """Create a new assessment from ``shell`` and the nested ``kkas`` tree."""
        return self._run(lambda: self._create_shell(shell, user_id), kkas, user_id, reuse_ids=True)

    def rebuild(self, assessment_id: str, shell: dict | None, kkas: list, user_id: str) -> BuildResult:
        """Replace the hierarchy of an existing assessment, keeping its id.

        Responses, factors, parameters, aspects, KKAs and PIC rows of the
        assessment are deleted (in that order) before the new tree is built.
        """
        def _prepare():
            assessment = self.session.get(Assessment, assessment_id) if assessment_id else None
            if assessment is None:
                raise InvalidReferenceError(resource="assessment", resource_id=assessment_id)
            self._apply_shell(assessment, shell or {}, partial=True)
            self._clear(assessment.id)
            return assessment

        return self._run(_prepare, kkas, user_id, reuse_ids=True)

    def create_from_template(self, shell: dict, user_id: str) -> BuildResult:
        """Create an assessment holding a private copy of the master template."""
        if self.dictionary is None:
            raise ValidationError("No dictionary source configured")
        template = self.dictionary.get_hierarchy()
        if not template:
            raise ValidationError("Master dictionary is empty", details={"dictionary": "empty"})
        return self._run(lambda: self._create_shell(shell, user_id), template, user_id, reuse_ids=False)

    def get_structure(self, assessment_id: str) -> dict:
        """Nested tree of the assessment's active rows, ordered by ``sort``."""
        assessment = self.session.get(Assessment, assessment_id) if assessment_id else None
        if assessment is None:
            raise NotFoundError(resource="Assessment", resource_id=assessment_id)

        by_parent = {}
        for level in LEVELS[1:]:
            grouped = defaultdict(list)
            for row in self._rows(level.model, assessment.id):
                grouped[getattr(row, level.parent_fk)].append(row)
            by_parent[level.name] = grouped

        def _expand(row, depth):
            node = row.to_dict()
            level = LEVELS[depth]
            if level.children:
                child_level = LEVELS[depth + 1]
                node[level.children] = [
                    _expand(child, depth + 1) for child in by_parent[child_level.name].get(row.id, [])
                ]
            return node

        tree = assessment.to_dict()
        tree["kkas"] = [_expand(kka, 0) for kka in self._rows(AssessmentKka, assessment.id)]
        return tree

    # ── Transaction wrapper ──────────────────────────────────────────────

    def _run(self, prepare, kkas, user_id, *, reuse_ids):
        if not isinstance(kkas, list) or not kkas:
            raise ValidationError("At least one KKA is required", details={"kkas": "required"})

        outbox = self.notifications.outbox() if self.notifications else None
        try:
            assessment = prepare()
            result = self._materialize(assessment, kkas, user_id, reuse_ids, outbox)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Hierarchy build rejected by constraint: %s", exc.orig)
            raise ConflictError(resource="Hierarchy", field="kode", value=str(exc.orig)[:200]) from exc
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Built hierarchy for assessment %s: %d KKA, %d factor(s), %d PIC",
            result.assessment.id, result.counts["kka"],
            result.counts["factor"], result.pic_count,
        )
        if outbox is not None:
            self.notifications.dispatch(outbox)
        return result

    # ── Shell ────────────────────────────────────────────────────────────

    def _create_shell(self, shell, user_id):
        if not isinstance(shell, dict):
            raise ValidationError("Assessment data must be an object")
        assessment = Assessment(created_by=user_id, status="draft")
        self._apply_shell(assessment, shell, partial=False)
        if not assessment.assessor_id:
            assessment.assessor_id = user_id
        self.session.add(assessment)
        self.session.flush()
        return assessment

    @staticmethod
    def _apply_shell(assessment, shell, *, partial):
        title = _text(shell.get("title"))
        if title:
            assessment.title = title[:300]
        elif not partial:
            raise ValidationError("title is required", details={"title": "required"})

        if shell.get("assessment_date"):
            parsed = parse_date(shell["assessment_date"])
            if parsed is None:
                raise ValidationError("assessment_date is not a valid date",
                                      details={"assessment_date": "invalid"})
            assessment.assessment_date = parsed
        if "notes" in shell:
            assessment.notes = _text(shell.get("notes"))
        if shell.get("assessor_id"):
            assessment.assessor_id = _text(shell["assessor_id"])

    def _clear(self, assessment_id):
        for model in (Response, AssessmentFactor, AssessmentParameter, AssessmentAspect,
                      AssessmentKka, PicAssignment):
            self.session.execute(delete(model).where(model.assessment_id == assessment_id))
        self.session.flush()

    # ── Tree ─────────────────────────────────────────────────────────────

    def _id_taken(self, model, candidate, claimed) -> bool:
        if candidate in claimed:
            return True
        return self.session.execute(
            select(model.id).where(model.id == candidate)
        ).first() is not None

    def _claim_id(self, model, caller_id, claimed, reuse_ids) -> str:
        if reuse_ids and is_uuid(caller_id) and not self._id_taken(model, caller_id, claimed):
            stored = caller_id
        else:
            stored = str(uuid.uuid4())
        claimed.add(stored)
        return stored

    def _materialize(self, assessment, kkas, user_id, reuse_ids, outbox) -> BuildResult:
        result = BuildResult(assessment=assessment)
        claimed: set[str] = set()
        hints = []
        # (node, parent row, ancestor codes)
        frontier = [(node, None, ()) for node in kkas]

        for level in LEVELS:
            seen: set[str] = set()
            next_frontier = []
            for index, (node, parent, path) in enumerate(frontier):
                if not isinstance(node, dict):
                    raise ValidationError(f"{level.prefix} node must be an object")
                caller_id = node.get("id")
                key = _text(caller_id) or None
                if key is not None:
                    if key in seen:
                        raise ConflictError(resource=level.prefix, field="id", value=key)
                    seen.add(key)

                row_id = self._claim_id(level.model, key, claimed, reuse_ids)
                kode = _text(node.get("kode")) or f"{level.prefix}-{row_id[:8]}"
                fields = {
                    "id": row_id,
                    "assessment_id": assessment.id,
                    "client_id": key[:100] if key else None,
                    "kode": kode,
                    "nama": (_text(node.get("nama")) or f"{level.prefix}-{row_id[:8]}")[:500],
                    "deskripsi": _text(node.get("deskripsi")),
                    "sort": int(_number(node, "sort", level.prefix, index)),
                }
                if level.parent_fk:
                    fields[level.parent_fk] = parent.id
                if level.name == "factor":
                    fields["kode"] = ".".join(path + (kode,))[:200]
                    fields["max_score"] = _number(node, "max_score", level.prefix, 1.0, positive=True)
                else:
                    fields["weight"] = _number(node, "weight", level.prefix, 1.0)

                row = level.model(**fields)
                self.session.add(row)
                if key is not None:
                    result.id_map[level.name][key] = row_id

                if level.children:
                    next_frontier.extend(
                        (child, row, path + (kode,)) for child in _children(node, level)
                    )
                elif node.get("pic_unit_id") or node.get("pic_user_id"):
                    hints.append((row, node))

            self.session.flush()
            result.counts[level.name] = len(frontier)
            frontier = next_frontier

        result.pic_count = self._assign_hints(assessment, hints, user_id, outbox)
        return result

    def _assign_hints(self, assessment, hints, user_id, outbox) -> int:
        if not hints:
            return 0
        parties = defaultdict(list)
        for factor, node in hints:
            unit_id = _text(node.get("pic_unit_id")) or None
            pic_user = _text(node.get("pic_user_id")) or None
            if unit_id and not self.identity.unit_exists(unit_id):
                raise InvalidReferenceError(resource="unit", resource_id=unit_id, scope=f"factor {factor.kode}")
            if pic_user and self.identity.get_identity(pic_user) is None:
                raise InvalidReferenceError(resource="user", resource_id=pic_user, scope=f"factor {factor.kode}")
            self.session.add(PicAssignment(
                assessment_id=assessment.id,
                target_type="factor",
                target_id=factor.id,
                unit_id=unit_id,
                user_id=pic_user,
                status="assigned",
                assigned_by=user_id,
            ))
            parties[(pic_user, unit_id)].append(factor.kode)
        self.session.flush()

        if assessment.status == "draft":
            assessment.status = "in_progress"

        if outbox is not None:
            for (pic_user, unit_id), codes in parties.items():
                outbox.add(
                    user_id=pic_user,
                    unit_id=unit_id,
                    title=f"Penugasan PIC: {assessment.title}",
                    message=f"Anda ditugaskan sebagai PIC untuk {len(codes)} faktor: {', '.join(codes)}",
                    category="assignment",
                    assessment_id=assessment.id,
                )
        return len(hints)

    # ── Queries ──────────────────────────────────────────────────────────

    def _rows(self, model, assessment_id):
        stmt = (
            select(model)
            .where(model.assessment_id == assessment_id, model.is_active.is_(True))
            .order_by(model.sort, model.created_at)
        )
        return self.session.execute(stmt).scalars().all()
