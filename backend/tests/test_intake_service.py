from datetime import datetime, time

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    SubmissionWindowClosedError,
    ValidationError,
)
from app.models.absence_request import LeaveType
from app.models.assignment_config import AssignmentConfig
from app.models.notification import Notification, NotificationEvent
from app.models.substitution_record import SubstitutionRecord, SubstitutionStatus
from app.models.teacher_workload import TeacherWorkloadState
from app.models.user import User, UserRole
from app.services.intake import submit_leave

from conftest import MONDAY, monday_scenario


def _workload(db, teacher_id: str) -> int:
    row = db.execute(
        select(TeacherWorkloadState).where(TeacherWorkloadState.teacher_id == teacher_id)
    ).scalar_one_or_none()
    return row.current_substitutions if row is not None else 0


def _records(db) -> list[SubstitutionRecord]:
    return list(db.execute(select(SubstitutionRecord).order_by(SubstitutionRecord.period_number)).scalars())


def test_monday_on_duty_splits_periods_between_candidates(db, school):
    monday_scenario(school)
    manager = db.get(User, "manager-1")

    result = submit_leave(
        db,
        requester=manager,
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.on_duty,
        reason="District sports meet",
    )
    db.commit()

    assert result.periods_requested == 2
    assert result.periods_assigned == 2
    assert [(item.period_number, item.substitute_teacher_id) for item in result.records] == [(2, "C1"), (4, "C2")]
    assert all(item.status == SubstitutionStatus.pending for item in result.records)
    assert _workload(db, "C1") == 1
    assert _workload(db, "C2") == 3


def test_assigned_substitutes_are_notified(db, school):
    monday_scenario(school)
    submit_leave(
        db,
        requester=db.get(User, "manager-1"),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.full_day,
        reason="Medical leave",
    )
    db.commit()

    events = db.execute(
        select(Notification.recipient_id).where(Notification.event_type == NotificationEvent.substitution_assigned)
    ).scalars()
    assert sorted(events) == ["user-C1", "user-C2"]


def test_cap_is_never_exceeded(db, school):
    # C2 already sits at the cap, so period 4 falls back to C1.
    monday_scenario(school, c2_current=3, max_substitutions=3)
    result = submit_leave(
        db,
        requester=db.get(User, "manager-1"),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.on_duty,
        reason="Training",
    )
    db.commit()

    assert [item.substitute_teacher_id for item in result.records] == ["C1", "C1"]
    assert _workload(db, "C2") == 3
    assert _workload(db, "C1") == 2


def test_all_candidates_excluded_leaves_periods_unassigned(db, school):
    monday_scenario(school)
    config = db.get(AssignmentConfig, "school-1")
    config.excluded_teacher_ids = ["C1", "C2"]
    db.commit()

    result = submit_leave(
        db,
        requester=db.get(User, "manager-1"),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.on_duty,
        reason="Conference",
    )
    db.commit()

    assert result.periods_requested == 2
    assert result.periods_assigned == 0
    assert result.periods_assigned < result.periods_requested
    assert "0 of 2" in result.message
    assert all(item.status == SubstitutionStatus.unassigned for item in result.records)
    assert all(item.substitute_teacher_id is None for item in result.records)

    manager_alerts = db.execute(
        select(Notification).where(Notification.event_type == NotificationEvent.substitution_unassigned)
    ).scalars().all()
    assert [item.recipient_id for item in manager_alerts] == ["manager-1"]
    assert manager_alerts[0].payload["periods"] == [2, 4]


def test_candidate_with_slot_at_period_is_never_chosen(db, school):
    monday_scenario(school)
    school.slot("C1", "Monday", 2, "A", class_id="class-2")
    school.commit()

    result = submit_leave(
        db,
        requester=db.get(User, "manager-1"),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.on_duty,
        reason="Exam duty",
    )
    db.commit()

    by_period = {item.period_number: item.substitute_teacher_id for item in result.records}
    assert by_period[2] == "C2"


def test_half_day_only_covers_morning_periods(db, school):
    monday_scenario(school)
    result = submit_leave(
        db,
        requester=db.get(User, "manager-1"),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.permission_morning,
        reason="Bank visit",
    )
    db.commit()
    assert [item.period_number for item in result.records] == [2]


def test_resubmitting_skips_active_periods_and_conflicts_when_all_active(db, school):
    monday_scenario(school)
    manager = db.get(User, "manager-1")
    submit_leave(
        db,
        requester=manager,
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.permission_morning,
        reason="Appointment",
    )
    db.commit()

    second = submit_leave(
        db,
        requester=manager,
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.full_day,
        reason="Unwell after appointment",
    )
    db.commit()
    assert second.skipped_periods == [2]
    assert [item.period_number for item in second.records] == [4]
    assert second.periods_requested == 1
    assert second.message.endswith("1 already had cover")

    with pytest.raises(ConflictError):
        submit_leave(
            db,
            requester=manager,
            teacher_id="T",
            absence_date=MONDAY,
            leave_type=LeaveType.full_day,
            reason="Still unwell",
        )
    db.rollback()

    active = [item for item in _records(db) if item.is_active]
    keys = [(item.absent_teacher_id, item.substitution_date, item.period_number) for item in active]
    assert len(keys) == len(set(keys))


def test_teacher_submission_outside_window_creates_nothing(db, school):
    monday_scenario(school)
    teacher_user = db.get(User, "user-T")

    with pytest.raises(SubmissionWindowClosedError):
        submit_leave(
            db,
            requester=teacher_user,
            teacher_id=None,
            absence_date=MONDAY,
            leave_type=LeaveType.full_day,
            reason="Fever",
            now=datetime.combine(MONDAY, time(9, 0)),
        )
    db.rollback()
    assert _records(db) == []


def test_teacher_submission_inside_window_uses_linked_profile(db, school):
    monday_scenario(school)
    result = submit_leave(
        db,
        requester=db.get(User, "user-T"),
        teacher_id=None,
        absence_date=MONDAY,
        leave_type=LeaveType.full_day,
        reason="Fever",
        now=datetime.combine(MONDAY, time(6, 45)),
    )
    db.commit()
    assert result.absence_request.teacher_id == "T"
    assert result.periods_assigned == 2


def test_teacher_cannot_submit_for_a_colleague(db, school):
    monday_scenario(school)
    with pytest.raises(AuthorizationError):
        submit_leave(
            db,
            requester=db.get(User, "user-C1"),
            teacher_id="T",
            absence_date=MONDAY,
            leave_type=LeaveType.full_day,
            reason="Covering for a friend",
            now=datetime.combine(MONDAY, time(6, 0)),
        )


def test_short_reason_is_rejected(db, school):
    school.user("admin-1", UserRole.admin)
    school.teacher("T", ["A"])
    school.commit()
    with pytest.raises(ValidationError):
        submit_leave(
            db,
            requester=db.get(User, "admin-1"),
            teacher_id="T",
            absence_date=MONDAY,
            leave_type=LeaveType.full_day,
            reason="  x ",
        )
