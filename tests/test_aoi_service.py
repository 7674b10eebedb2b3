"""
Tests: Area of Improvement generation and lifecycle.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from gcg_platform.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from gcg_platform.models import db as _db
from gcg_platform.models.aoi import Aoi
from gcg_platform.models.hierarchy import AssessmentKka
from gcg_platform.models.notification import Notification
from gcg_platform.services.aoi_service import priority_for

ADMIN = "admin-1"
OWNER = "owner-1"
PIC_1 = "pic-1"
PIC_2 = "pic-2"
OUTSIDER = "out-1"


def _aoi_count():
    return _db.session.execute(select(func.count(Aoi.id))).scalar()


def _score(services, built, factor_ids, f1, f2):
    services.responses.submit_responses(built.assessment.id, [
        {"factor_id": factor_ids["f1"], "score": f1},
        {"factor_id": factor_ids["f2"], "score": f2},
    ], ADMIN)


def _manual(services, built, factor_ids, **overrides):
    data = {
        "target_type": "factor",
        "target_id": factor_ids["f1"],
        "recommendation": "Lengkapi dokumen pendukung",
        **overrides,
    }
    return services.aois.create_aoi(built.assessment.id, data, OWNER)


@pytest.mark.parametrize("pct, expected", [(0, "critical"), (24, "critical"), (25, "high"),
                                           (34, "high"), (35, "medium"), (49, "medium")])
def test_priority_for(pct, expected):
    assert priority_for(pct) == expected


# ── Generation ───────────────────────────────────────────────────────────────


def test_generate_for_low_kka(services, built, factor_ids):
    _score(services, built, factor_ids, 2, 1)
    kka_id = built.id_map["kka"]["k1"]

    aoi = services.aois.generate_for_kka(built.assessment.id, kka_id, OWNER)

    assert aoi.kka_id == kka_id
    assert aoi.target_type == "kka"
    assert aoi.nama == "Perbaikan Komitmen"
    assert "25%" in aoi.recommendation
    assert "50%" in aoi.recommendation
    assert aoi.priority == "high"
    assert aoi.status == "open"
    assert aoi.due_date == date.today() + timedelta(days=90)


def test_second_generation_conflicts(services, built, factor_ids):
    _score(services, built, factor_ids, 2, 1)
    kka_id = built.id_map["kka"]["k1"]
    first = services.aois.generate_for_kka(built.assessment.id, kka_id, OWNER)

    with pytest.raises(ConflictError):
        services.aois.generate_for_kka(built.assessment.id, kka_id, OWNER)

    rows = _db.session.execute(select(Aoi)).scalars().all()
    assert [r.id for r in rows] == [first.id]


def test_unscored_kka_is_critical(services, built):
    aoi = services.aois.generate_for_kka(built.assessment.id, built.id_map["kka"]["k2"], OWNER)
    assert aoi.priority == "critical"
    assert "0%" in aoi.recommendation


def test_kka_at_threshold_gets_no_aoi(services, built, factor_ids):
    _score(services, built, factor_ids, 9, 9)
    with pytest.raises(ValidationError):
        services.aois.generate_for_kka(built.assessment.id, built.id_map["kka"]["k1"], OWNER)
    assert _aoi_count() == 0


def test_generate_requires_manage(services, built):
    with pytest.raises(PermissionDenied):
        services.aois.generate_for_kka(built.assessment.id, built.id_map["kka"]["k2"], PIC_1)


def test_generate_unknown_kka(services, built):
    with pytest.raises(NotFoundError):
        services.aois.generate_for_kka(built.assessment.id, "missing", OWNER)


def test_list_candidates(services, built, factor_ids):
    _score(services, built, factor_ids, 9, 9)
    candidates = services.aois.list_candidates(built.assessment.id, OWNER)
    assert [c["kode"] for c in candidates] == ["KKA2"]
    assert candidates[0]["has_aoi"] is False


def test_generation_race_is_a_conflict(services, built, monkeypatch):
    kka_id = built.id_map["kka"]["k2"]
    first = services.aois.generate_for_kka(built.assessment.id, kka_id, OWNER)

    # a concurrent generator that checked before the first insert landed
    monkeypatch.setattr(services.aois, "_existing_for_kka", lambda *args: None)
    with pytest.raises(ConflictError):
        services.aois.generate_for_kka(built.assessment.id, kka_id, OWNER)

    assert [a.id for a in _db.session.execute(select(Aoi)).scalars()] == [first.id]


def test_one_aoi_per_kka_in_storage(built):
    kka_id = built.id_map["kka"]["k1"]
    for _ in range(2):
        _db.session.add(Aoi(assessment_id=built.assessment.id, kka_id=kka_id, target_type="kka",
                            target_id=kka_id, recommendation="Perbaiki"))
    with pytest.raises(IntegrityError):
        _db.session.commit()
    _db.session.rollback()


def test_archived_kka_is_not_scored(services, built):
    kka_id = built.id_map["kka"]["k2"]
    _db.session.get(AssessmentKka, kka_id).is_active = False
    _db.session.commit()

    with pytest.raises(NotFoundError):
        services.aois.generate_for_kka(built.assessment.id, kka_id, OWNER)
    assert [c["kode"] for c in services.aois.list_candidates(built.assessment.id, OWNER)] == ["KKA1"]
    assert _aoi_count() == 0


def test_reads_require_view(services, built):
    with pytest.raises(PermissionDenied):
        services.aois.list_candidates(built.assessment.id, OUTSIDER)
    with pytest.raises(PermissionDenied):
        services.aois.stats(built.assessment.id, OUTSIDER)
    with pytest.raises(PermissionDenied):
        services.aois.stats("no-such", OUTSIDER)


# ── Manual CRUD ──────────────────────────────────────────────────────────────


def test_create_manual_aoi(services, built, factor_ids):
    aoi = _manual(services, built, factor_ids, priority="Low", due_date="31.12.2026")
    assert aoi.kka_id is None
    assert aoi.priority == "low"
    assert aoi.due_date == date(2026, 12, 31)


@pytest.mark.parametrize("overrides, error", [
    ({"recommendation": "  "}, ValidationError),
    ({"target_type": "aspect"}, ValidationError),
    ({"target_id": "missing"}, InvalidReferenceError),
    ({"priority": "urgent"}, ValidationError),
    ({"due_date": "someday"}, ValidationError),
])
def test_create_manual_aoi_rejects(services, built, factor_ids, overrides, error):
    with pytest.raises(error):
        _manual(services, built, factor_ids, **overrides)
    assert _aoi_count() == 0


def test_update_cannot_change_status(services, built, factor_ids):
    aoi = _manual(services, built, factor_ids)
    with pytest.raises(ValidationError):
        services.aois.update_aoi(aoi.id, {"status": "completed"}, OWNER)
    updated = services.aois.update_aoi(aoi.id, {"nama": "Dokumen", "priority": "critical"}, OWNER)
    assert updated.nama == "Dokumen"
    assert updated.priority == "critical"


def test_missing_aoi_denied_for_non_admin(services):
    with pytest.raises(NotFoundError):
        services.aois.get("missing", ADMIN)
    with pytest.raises(PermissionDenied):
        services.aois.get("missing", OUTSIDER)


def test_outsider_cannot_read_aoi(services, built, factor_ids):
    aoi = _manual(services, built, factor_ids)
    with pytest.raises(PermissionDenied):
        services.aois.get(aoi.id, OUTSIDER)
    services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], user_id=PIC_1, assigned_by=OWNER)
    assert services.aois.get(aoi.id, PIC_1).id == aoi.id


# ── Lifecycle ────────────────────────────────────────────────────────────────


def test_transitions(services, built, factor_ids):
    aoi = _manual(services, built, factor_ids)

    assert services.aois.transition(aoi.id, "verifikasi", OWNER).status == "in_progress"
    done = services.aois.transition(aoi.id, "completed", OWNER)
    assert done.status == "completed"
    assert done.completed_at is not None

    with pytest.raises(ValidationError):
        services.aois.transition(aoi.id, "open", OWNER)
    with pytest.raises(ValidationError):
        services.aois.transition(aoi.id, "paused", OWNER)


def test_mark_overdue_only_moves_in_progress(services, built, factor_ids):
    past = (date.today() - timedelta(days=1)).isoformat()
    open_aoi = _manual(services, built, factor_ids, due_date=past)
    active = _manual(services, built, factor_ids, due_date=past, target_id=factor_ids["f2"])
    services.aois.transition(active.id, "in_progress", OWNER)

    changed = services.aois.mark_overdue()

    assert changed == [active.id]
    assert _db.session.get(Aoi, active.id).status == "overdue"
    assert _db.session.get(Aoi, open_aoi.id).status == "open"
    assert services.aois.transition(active.id, "in_progress", OWNER).status == "in_progress"


def test_archive_hides_from_lists_and_stats(services, built, factor_ids):
    keep = _manual(services, built, factor_ids)
    gone = _manual(services, built, factor_ids, target_id=factor_ids["f2"])
    services.aois.archive(gone.id, OWNER)

    listed = services.aois.list_for_assessment(built.assessment.id, OWNER)
    assert [a.id for a in listed] == [keep.id]
    assert len(services.aois.list_for_assessment(built.assessment.id, OWNER, include_archived=True)) == 2
    assert services.aois.stats(built.assessment.id, OWNER)["total"] == 1


def test_stats(services, built, factor_ids):
    past = date.today() - timedelta(days=3)
    a = _manual(services, built, factor_ids, due_date=past.isoformat(), priority="high")
    _manual(services, built, factor_ids, target_id=factor_ids["f2"])
    services.aois.transition(a.id, "completed", OWNER)

    stats = services.aois.stats(built.assessment.id, OWNER)
    assert stats["total"] == 2
    assert stats["by_status"]["completed"] == 1
    assert stats["by_status"]["open"] == 1
    assert stats["by_priority"]["high"] == 1
    assert stats["past_due"] == 0
    assert stats["completion_rate"] == 50.0


# ── Notifications ────────────────────────────────────────────────────────────


def test_generation_notifies_kka_pic_parties(services, built, factor_ids, sender):
    services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], unit_id="unit-fin", assigned_by=OWNER)
    services.pics.assign(built.assessment.id, "factor", factor_ids["f3"], user_id=OUTSIDER, assigned_by=OWNER)
    sender.sent.clear()

    aoi = services.aois.generate_for_kka(built.assessment.id, built.id_map["kka"]["k1"], OWNER)

    assert sorted(m["recipient"] for m in sender.sent) == ["pic1@gcg.local", "pic2@gcg.local"]
    inbox = services.notifications.list_for_recipient(PIC_2, assessment_id=built.assessment.id)
    assert inbox[0].category == "aoi"
    assert inbox[0].title == f"AOI baru: {aoi.nama}"
    outsider = services.notifications.list_for_recipient(OUTSIDER, assessment_id=built.assessment.id)
    assert [n.category for n in outsider] == ["assignment"]


def test_transition_notifies_target_pic(services, built, factor_ids):
    aoi = _manual(services, built, factor_ids)
    services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], user_id=PIC_1, assigned_by=OWNER)

    services.aois.transition(aoi.id, "in_progress", OWNER)

    rows = _db.session.execute(select(Notification).where(Notification.category == "aoi")).scalars().all()
    assert [(n.recipient, n.message) for n in rows] == [(PIC_1, "Status berubah dari open ke in_progress.")]


def test_aoi_without_pic_notifies_nobody(services, built, factor_ids, sender):
    aoi = _manual(services, built, factor_ids)
    services.aois.transition(aoi.id, "completed", OWNER)
    assert sender.sent == []
