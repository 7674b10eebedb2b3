"""
Tests: PIC Assignment Service.
"""

import pytest
from sqlalchemy import func, select

from gcg_platform.core.exceptions import (
    InvalidReferenceError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from gcg_platform.models import db as _db
from gcg_platform.models.notification import Notification
from gcg_platform.models.pic import PicAssignment

ADMIN = "admin-1"
OWNER = "owner-1"
PIC_1 = "pic-1"
PIC_2 = "pic-2"
OUTSIDER = "out-1"


def _pic_count():
    return _db.session.execute(select(func.count(PicAssignment.id))).scalar()


def test_assign_escalates_draft_and_notifies(services, built, factor_ids, sender):
    row = services.pics.assign(
        built.assessment.id, "factor", factor_ids["f1"], unit_id="unit-fin", assigned_by=OWNER,
    )
    assert row.status == "assigned"
    assert row.assigned_by == OWNER
    assert built.assessment.status == "in_progress"

    recipients = sorted(n.recipient for n in _db.session.execute(select(Notification)).scalars())
    assert recipients == [PIC_1, PIC_2]
    assert all(m["subject"] == "Penugasan PIC: GCG 2026" for m in sender.sent)


def test_reassign_overwrites_single_row(services, built, factor_ids):
    fid = factor_ids["f1"]
    first = services.pics.assign(built.assessment.id, "factor", fid, user_id=PIC_1, assigned_by=OWNER)
    services.pics.update_status(first.id, "submitted", PIC_1)

    second = services.pics.assign(built.assessment.id, "factor", fid, unit_id="unit-ops", assigned_by=OWNER)

    assert _pic_count() == 1
    assert second.id == first.id
    assert second.user_id is None
    assert second.unit_id == "unit-ops"
    assert second.status == "assigned"


def test_only_owner_or_admin_assigns(services, built, factor_ids):
    with pytest.raises(PermissionDenied):
        services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], user_id=PIC_1, assigned_by=PIC_2)
    assert services.pics.assign(
        built.assessment.id, "factor", factor_ids["f1"], user_id=PIC_1, assigned_by=ADMIN,
    )


def test_target_must_belong_to_assessment(services, built):
    other = services.builder.build({"title": "Other"}, [{"aspects": [{"parameters": [{"factors": [{"id": "x"}]}]}]}], OWNER)
    with pytest.raises(InvalidReferenceError):
        services.pics.assign(
            built.assessment.id, "factor", other.id_map["factor"]["x"], user_id=PIC_1, assigned_by=OWNER,
        )


def test_parameter_target(services, built):
    row = services.pics.assign(
        built.assessment.id, "parameter", built.id_map["parameter"]["p1"], user_id=PIC_1, assigned_by=OWNER,
    )
    assert row.target_type == "parameter"


@pytest.mark.parametrize("kwargs, error", [
    ({"target_type": "kka"}, ValidationError),
    ({"unit_id": None, "user_id": None}, ValidationError),
    ({"unit_id": "unit-ghost"}, InvalidReferenceError),
    ({"user_id": "ghost"}, InvalidReferenceError),
])
def test_invalid_assignment_rejected(services, built, factor_ids, kwargs, error):
    args = {"target_type": "factor", "unit_id": None, "user_id": None, **kwargs}
    if "unit_id" not in kwargs and "user_id" not in kwargs:
        args["user_id"] = PIC_1
    with pytest.raises(error):
        services.pics.assign(
            built.assessment.id, args["target_type"], factor_ids["f1"],
            unit_id=args["unit_id"], user_id=args["user_id"], assigned_by=OWNER,
        )
    assert _pic_count() == 0
    assert built.assessment.status == "draft"


def test_bulk_assign_is_all_or_nothing(services, built, factor_ids):
    with pytest.raises(InvalidReferenceError):
        services.pics.bulk_assign(built.assessment.id, [
            {"factor_id": factor_ids["f1"], "unit_id": "unit-fin"},
            {"factor_id": factor_ids["f2"], "unit_id": "unit-ghost"},
        ], OWNER)
    assert _pic_count() == 0

    rows = services.pics.bulk_assign(built.assessment.id, [
        {"factor_id": factor_ids["f1"], "unit_id": "unit-fin"},
        {"target_type": "factor", "target_id": factor_ids["f2"], "user_id": PIC_1},
    ], OWNER)
    assert len(rows) == 2


def test_bulk_assign_requires_items(services, built):
    with pytest.raises(ValidationError):
        services.pics.bulk_assign(built.assessment.id, [], OWNER)


def test_list_for_user_includes_unit_rows(services, built, factor_ids):
    services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], unit_id="unit-fin", assigned_by=OWNER)
    services.pics.assign(built.assessment.id, "factor", factor_ids["f2"], user_id=PIC_1, assigned_by=OWNER)

    assert len(services.pics.list_for_user(PIC_1)) == 2
    assert len(services.pics.list_for_user(PIC_2)) == 1
    assert services.pics.list_for_user(OUTSIDER) == []
    assert len(services.pics.list_for_assessment(built.assessment.id, OWNER)) == 2
    assert len(services.pics.list_for_assessment(built.assessment.id, PIC_2)) == 2
    with pytest.raises(PermissionDenied):
        services.pics.list_for_assessment(built.assessment.id, OUTSIDER)


def test_update_status_rules(services, built, factor_ids):
    row = services.pics.assign(built.assessment.id, "factor", factor_ids["f1"], unit_id="unit-fin", assigned_by=OWNER)

    assert services.pics.update_status(row.id, "in_progress", PIC_2).status == "in_progress"
    with pytest.raises(PermissionDenied):
        services.pics.update_status(row.id, "completed", PIC_2)
    with pytest.raises(PermissionDenied):
        services.pics.update_status(row.id, "submitted", OUTSIDER)
    with pytest.raises(ValidationError):
        services.pics.update_status(row.id, "finished", OWNER)
    assert services.pics.update_status(row.id, "completed", OWNER).status == "completed"


def test_remove(services, built, factor_ids):
    row_id = services.pics.assign(
        built.assessment.id, "factor", factor_ids["f1"], user_id=PIC_1, assigned_by=OWNER,
    ).id
    with pytest.raises(PermissionDenied):
        services.pics.remove(row_id, PIC_1)
    services.pics.remove(row_id, OWNER)
    assert _pic_count() == 0
    with pytest.raises(NotFoundError):
        services.pics.remove(row_id, OWNER)
