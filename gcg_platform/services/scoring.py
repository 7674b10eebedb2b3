"""
GCG Assessment Platform
Score Aggregator.

Rolls raw factor scores up the KKA → Aspect → Parameter → Factor hierarchy:

  Factor     normalized = score / (max_score or 1)
  Parameter  avg = Σ normalized / responded factor count
  Aspect     avg = Σ parameter weighted / parameter count
  KKA        avg = Σ aspect weighted / aspect count
  Overall    avg = Σ KKA weighted / KKA count

At every level:
  fuk      = convert_to_fuk(avg)
  weighted = fuk × (weight or 1)

The parent average is a simple mean over its children, each pre-scaled by
its own weight. Only responded factors contribute; a node without any
responded descendant is left out of its parent's child count and of the
output tree.

Architecture:
  Each level is loaded with one query per assessment and grouped in memory
  by parent id, so a calculation costs six queries regardless of size.
  The aggregator never writes and never raises for empty or unknown data.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select

from gcg_platform.core.exceptions import NotFoundError
from gcg_platform.models.hierarchy import (
    AssessmentAspect,
    AssessmentFactor,
    AssessmentKka,
    AssessmentParameter,
    Response,
)
from gcg_platform.utils.helpers import round_score

logger = logging.getLogger(__name__)


# ─── Level conversion ────────────────────────────────────────────────────────

# (exclusive lower bound, level) evaluated top-down
FUK_STEPS: tuple[tuple[float, float], ...] = (
    (0.85, 1.00),
    (0.75, 0.75),
    (0.50, 0.50),
    (0.00, 0.25),
)

# (inclusive lower bound, label)
FUK_LABELS: tuple[tuple[float, str], ...] = (
    (0.85, "Sangat Baik"),
    (0.75, "Baik"),
    (0.50, "Cukup"),
    (0.25, "Kurang"),
)


def convert_to_fuk(average: float) -> float:
    """Convert an average into its fulfilment level. Comparisons are strict."""
    for bound, level in FUK_STEPS:
        if average > bound:
            return level
    return 0.00


def fuk_label(fuk: float) -> str:
    for bound, label in FUK_LABELS:
        if fuk >= bound:
            return label
    return "Tidak Ada"


def normalize(score, max_score) -> float:
    """Raw score as a fraction of the factor's max score (max 0/None → 1)."""
    return float(score or 0.0) / float(max_score or 1.0)


def rollup(contributions: list[float], weight=None) -> tuple[float, float, float]:
    """Return (avg, fuk, weighted) for one node from its children's contributions."""
    avg = sum(contributions) / len(contributions)
    fuk = convert_to_fuk(avg)
    return avg, fuk, fuk * float(weight or 1.0)


def _node_scores(avg: float, fuk: float, weighted: float, weight) -> dict:
    return {
        "raw_score": round_score(avg),
        "fuk_score": round_score(fuk),
        "weighted_score": round_score(weighted),
        "weight": float(weight or 1.0),
    }


def empty_result(assessment_id: str, total_factors: int = 0) -> dict:
    return {
        "assessment_id": assessment_id,
        "total_factors": total_factors,
        "completed_factors": 0,
        "completion_percentage": 0.0,
        "overall_score": 0.0,
        "overall_fuk": 0.0,
        "overall_label": fuk_label(0.0),
        "kka_scores": [],
    }


# ═════════════════════════════════════════════════════════════════════════════
# Aggregator
# ═════════════════════════════════════════════════════════════════════════════


class ScoreAggregator:
    """Read-only score calculation over one assessment.

    Usage:
        result = ScoreAggregator(db.session).calculate(assessment_id)
        result["overall_fuk"], result["kka_scores"][0]["aspects"]
    """

    def __init__(self, session, access=None) -> None:
        self.session = session
        self.access = access

    # ── Loading ──────────────────────────────────────────────────────────

    def _active(self, model, assessment_id):
        stmt = (
            select(model)
            .where(model.assessment_id == assessment_id, model.is_active.is_(True))
            .order_by(model.sort, model.kode)
        )
        return self.session.execute(stmt).scalars().all()

    def _load(self, assessment_id):
        kkas = self._active(AssessmentKka, assessment_id)
        aspects_by_kka = defaultdict(list)
        for a in self._active(AssessmentAspect, assessment_id):
            aspects_by_kka[a.kka_id].append(a)
        params_by_aspect = defaultdict(list)
        for p in self._active(AssessmentParameter, assessment_id):
            params_by_aspect[p.aspect_id].append(p)
        factors_by_param = defaultdict(list)
        for f in self._active(AssessmentFactor, assessment_id):
            factors_by_param[f.parameter_id].append(f)
        responses = {
            r.factor_id: r
            for r in self.session.execute(
                select(Response).where(Response.assessment_id == assessment_id)
            ).scalars()
        }
        return kkas, aspects_by_kka, params_by_aspect, factors_by_param, responses

    # ── Per-level rollup ─────────────────────────────────────────────────

    @staticmethod
    def _score_parameter(param, factors, responses):
        rows = []
        normalized = []
        for f in factors:
            resp = responses.get(f.id)
            if resp is None:
                continue
            n = normalize(resp.score, f.max_score)
            normalized.append(n)
            rows.append({
                "factor_id": f.id,
                "kode": f.kode,
                "nama": f.nama,
                "max_score": float(f.max_score or 1.0),
                "raw_score": round_score(resp.score),
                "normalized_score": round_score(n),
                "fuk_score": round_score(convert_to_fuk(n)),
            })
        if not rows:
            return None, 0.0
        avg, fuk, weighted = rollup(normalized, param.weight)
        node = {
            "parameter_id": param.id,
            "kode": param.kode,
            "nama": param.nama,
            **_node_scores(avg, fuk, weighted, param.weight),
            "factor_count": len(factors),
            "completed_factors": len(rows),
            "factors": rows,
        }
        return node, weighted

    def _score_aspect(self, aspect, params_by_aspect, factors_by_param, responses):
        children = []
        contributions = []
        factor_count = 0
        for p in params_by_aspect.get(aspect.id, []):
            factor_count += len(factors_by_param.get(p.id, []))
            node, weighted = self._score_parameter(p, factors_by_param.get(p.id, []), responses)
            if node is not None:
                children.append(node)
                contributions.append(weighted)
        if not children:
            return None, 0.0
        avg, fuk, weighted = rollup(contributions, aspect.weight)
        node = {
            "aspect_id": aspect.id,
            "kode": aspect.kode,
            "nama": aspect.nama,
            **_node_scores(avg, fuk, weighted, aspect.weight),
            "parameter_count": len(children),
            "factor_count": factor_count,
            "completed_factors": sum(c["completed_factors"] for c in children),
            "parameters": children,
        }
        return node, weighted

    def _score_kka(self, kka, tree):
        _, aspects_by_kka, params_by_aspect, factors_by_param, responses = tree
        children = []
        contributions = []
        for a in aspects_by_kka.get(kka.id, []):
            node, weighted = self._score_aspect(a, params_by_aspect, factors_by_param, responses)
            if node is not None:
                children.append(node)
                contributions.append(weighted)
        if not children:
            return None, 0.0
        avg, fuk, weighted = rollup(contributions, kka.weight)
        node = {
            "kka_id": kka.id,
            "kode": kka.kode,
            "nama": kka.nama,
            **_node_scores(avg, fuk, weighted, kka.weight),
            "aspect_count": len(children),
            "completed_factors": sum(c["completed_factors"] for c in children),
            "aspects": children,
        }
        return node, weighted

    # ── Public API ───────────────────────────────────────────────────────

    def calculate(self, assessment_id: str) -> dict:
        """Full rollup for one assessment.

        Returns the zero result (``kka_scores=[]``) for an unknown assessment
        or one without responses.
        """
        tree = self._load(assessment_id)
        kkas, _, _, factors_by_param, responses = tree
        total_factors = sum(len(v) for v in factors_by_param.values())

        kka_nodes = []
        contributions = []
        for kka in kkas:
            node, weighted = self._score_kka(kka, tree)
            if node is not None:
                kka_nodes.append(node)
                contributions.append(weighted)

        if not kka_nodes:
            logger.debug("No scored responses for assessment %s", assessment_id)
            return empty_result(assessment_id, total_factors)

        avg, fuk, _ = rollup(contributions)
        completed = sum(n["completed_factors"] for n in kka_nodes)
        return {
            "assessment_id": assessment_id,
            "total_factors": total_factors,
            "completed_factors": completed,
            "completion_percentage": round_score(completed / total_factors * 100) if total_factors else 0.0,
            "overall_score": round_score(avg),
            "overall_fuk": round_score(fuk),
            "overall_label": fuk_label(fuk),
            "kka_scores": kka_nodes,
        }

    def results(self, assessment_id: str, user_id: str) -> dict:
        """``calculate`` for a user allowed to view the assessment.

        Raises:
            PermissionDenied: user may not view the assessment (or it does not exist).
        """
        self.access.require_view_assessment(user_id, assessment_id)
        return self.calculate(assessment_id)

    def kka_score(self, assessment_id: str, kka_id: str) -> dict:
        """Rollup of a single active KKA. A KKA without responses scores 0.

        Raises:
            NotFoundError: KKA is not an active part of the assessment.
        """
        kka = self.session.execute(
            select(AssessmentKka).where(
                AssessmentKka.id == kka_id,
                AssessmentKka.assessment_id == assessment_id,
                AssessmentKka.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if kka is None:
            raise NotFoundError(resource="KKA", resource_id=kka_id)

        node, _ = self._score_kka(kka, self._load(assessment_id))
        if node is None:
            node = {
                "kka_id": kka.id,
                "kode": kka.kode,
                "nama": kka.nama,
                **_node_scores(0.0, 0.0, 0.0, kka.weight),
                "aspect_count": 0,
                "completed_factors": 0,
                "aspects": [],
            }
        node["percentage"] = round(node["raw_score"] * 100)
        return node
