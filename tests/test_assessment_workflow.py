"""
Tests: assessment status workflow and revision requests.
"""

import pytest

from gcg_platform.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from gcg_platform.models.hierarchy import ASSESSMENT_TRANSITIONS
from gcg_platform.services.assessment_service import validate_transition

ADMIN = "admin-1"
OWNER = "owner-1"
PIC_1 = "pic-1"
PIC_2 = "pic-2"


def _advance(services, assessment_id, *statuses, user=OWNER):
    for status in statuses:
        services.assessments.change_status(assessment_id, status, user)


def test_completed_is_terminal():
    assert ASSESSMENT_TRANSITIONS["completed"] == set()
    with pytest.raises(ValidationError):
        validate_transition("completed", "in_progress")


def test_unknown_status_rejected():
    with pytest.raises(ValidationError):
        validate_transition("draft", "approved")


def test_happy_path_to_completed(services, built):
    aid = built.assessment.id
    _advance(services, aid, "in_progress", "submitted", "under_review")

    with pytest.raises(PermissionDenied):
        services.assessments.change_status(aid, "completed", OWNER)

    assessment = services.assessments.change_status(aid, "completed", ADMIN)
    assert assessment.status == "completed"


def test_skipping_steps_rejected(services, built):
    with pytest.raises(ValidationError):
        services.assessments.change_status(built.assessment.id, "submitted", OWNER)
    assert built.assessment.status == "draft"


def test_pic_cannot_change_status(services, built, factor_ids):
    services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], user_id=PIC_1, assigned_by=OWNER)
    with pytest.raises(PermissionDenied):
        services.assessments.change_status(built.assessment.id, "submitted", PIC_1)


def test_revision_round_trip(services, built, factor_ids, sender):
    aid = built.assessment.id
    services.pics.assign(aid, "factor", factor_ids["f1"], unit_id="unit-fin", assigned_by=OWNER)
    _advance(services, aid, "submitted")
    sender.sent.clear()

    revision = services.assessments.request_revision(aid, OWNER, note="Lampirkan bukti rapat")

    assert revision.status == "pending"
    assert built.assessment.status == "revision_required"
    assert {m["recipient"] for m in sender.sent} == {"pic1@gcg.local", "pic2@gcg.local"}
    inbox = services.notifications.list_for_recipient(PIC_2, assessment_id=aid)
    assert inbox[0].category == "revision"
    assert inbox[0].message == "Lampirkan bukti rapat"

    done = services.assessments.complete_revision(aid, revision.id, PIC_1)
    assert done.status == "completed"
    assert done.completed_at is not None
    assert built.assessment.status == "submitted"

    with pytest.raises(ValidationError):
        services.assessments.complete_revision(aid, revision.id, PIC_1)
    assert [r.id for r in services.assessments.list_revisions(aid, OWNER)] == [revision.id]


def test_revision_requires_submitted_or_review(services, built):
    with pytest.raises(ValidationError):
        services.assessments.request_revision(built.assessment.id, OWNER)


def test_complete_unknown_revision(services, built):
    with pytest.raises(NotFoundError):
        services.assessments.complete_revision(built.assessment.id, "missing", OWNER)


def test_list_for_user_and_archive(services, built, factor_ids):
    services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], user_id=PIC_1, assigned_by=OWNER)
    assert [a.id for a in services.assessments.list_for_user(PIC_1)] == [built.assessment.id]
    assert services.assessments.list_for_user(PIC_2) == []

    services.assessments.archive(built.assessment.id, OWNER)
    assert services.assessments.list_for_user(PIC_1) == []


def test_get_checks_view(services, built):
    assert services.assessments.get(built.assessment.id, OWNER).id == built.assessment.id
    with pytest.raises(PermissionDenied):
        services.assessments.get(built.assessment.id, PIC_1)
