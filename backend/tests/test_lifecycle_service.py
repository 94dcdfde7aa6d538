import pytest
from sqlalchemy import select

from app.core.exceptions import AuthorizationError, InvalidStateError, ValidationError
from app.models.absence_request import LeaveType
from app.models.assignment_config import AssignmentConfig
from app.models.substitution_record import Active, SubstitutionRecord, SubstitutionStatus, SupersededBy
from app.models.teacher_workload import TeacherWorkloadState
from app.models.user import User
from app.services.intake import submit_leave
from app.services.lifecycle import (
    cancel_substitution,
    complete_substitution,
    confirm_substitution,
    rematch_substitution,
    request_replacement,
)

from conftest import MONDAY, monday_scenario


def _workload(db, teacher_id: str) -> int:
    row = db.execute(
        select(TeacherWorkloadState).where(TeacherWorkloadState.teacher_id == teacher_id)
    ).scalar_one_or_none()
    return row.current_substitutions if row is not None else 0


def _period_two_record(db, school, **scenario) -> SubstitutionRecord:
    monday_scenario(school, **scenario)
    result = submit_leave(
        db,
        requester=db.get(User, "manager-1"),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.permission_morning,
        reason="Appointment",
    )
    db.commit()
    record = result.records[0]
    assert record.period_number == 2
    assert record.substitute_teacher_id == "C1"
    return record


@pytest.fixture()
def manager(db):
    return lambda: db.get(User, "manager-1")


def test_substitute_confirms_pending_record(db, school):
    record = _period_two_record(db, school)

    confirmed = confirm_substitution(db, actor=db.get(User, "user-C1"), record_id=record.id)
    db.commit()

    assert confirmed.status == SubstitutionStatus.confirmed
    assert confirmed.confirmed_by_id == "user-C1"
    assert confirmed.confirmed_at is not None


def test_unrelated_teacher_cannot_confirm(db, school):
    record = _period_two_record(db, school)
    with pytest.raises(AuthorizationError):
        confirm_substitution(db, actor=db.get(User, "user-C2"), record_id=record.id)


def test_confirming_twice_is_an_invalid_transition(db, school, manager):
    record = _period_two_record(db, school)
    confirm_substitution(db, actor=manager(), record_id=record.id)
    db.commit()

    with pytest.raises(InvalidStateError) as exc_info:
        confirm_substitution(db, actor=manager(), record_id=record.id)
    assert exc_info.value.status_code == 409
    assert exc_info.value.details["status"] == "confirmed"


def test_cancel_decrements_substitute_by_exactly_one(db, school, manager):
    record = _period_two_record(db, school)
    assert _workload(db, "C1") == 1

    cancelled = cancel_substitution(db, actor=manager(), record_id=record.id, reason="Class merged")
    db.commit()

    assert cancelled.status == SubstitutionStatus.cancelled
    assert cancelled.active_slot_key is None
    assert cancelled.cancellation_reason == "Class merged"
    assert _workload(db, "C1") == 0

    with pytest.raises(InvalidStateError):
        cancel_substitution(db, actor=manager(), record_id=record.id, reason="Again")
    db.rollback()
    assert _workload(db, "C1") == 0


def test_teacher_cannot_cancel(db, school):
    record = _period_two_record(db, school)
    with pytest.raises(AuthorizationError):
        cancel_substitution(db, actor=db.get(User, "user-C1"), record_id=record.id, reason="Busy")


def test_unassigned_record_cannot_be_cancelled(db, school, manager):
    monday_scenario(school)
    db.get(AssignmentConfig, "school-1").excluded_teacher_ids = ["C1", "C2"]
    db.commit()
    result = submit_leave(
        db,
        requester=manager(),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.permission_morning,
        reason="Appointment",
    )
    db.commit()

    with pytest.raises(InvalidStateError):
        cancel_substitution(db, actor=manager(), record_id=result.records[0].id, reason="Nothing to cancel")


def test_replacement_moves_load_once_and_links_records(db, school):
    record = _period_two_record(db, school)

    outcome = request_replacement(db, actor=db.get(User, "user-C1"), record_id=record.id, reason="Called to exam hall")
    db.commit()

    assert outcome.replacement_found is True
    assert outcome.original.status == SubstitutionStatus.substituted
    assert outcome.original.active_slot_key is None
    assert outcome.replacement.substitute_teacher_id == "C2"
    assert outcome.replacement.supersedes_id == record.id
    assert outcome.original.lineage == SupersededBy(outcome.replacement.id)
    assert outcome.replacement.lineage == Active()
    assert _workload(db, "C1") == 0
    assert _workload(db, "C2") == 3


def test_replacement_without_candidate_creates_unassigned_successor(db, school, manager):
    record = _period_two_record(db, school, c2_current=3, max_substitutions=3)

    outcome = request_replacement(db, actor=manager(), record_id=record.id, reason="Substitute unwell")
    db.commit()

    assert outcome.replacement_found is False
    assert outcome.replacement.status == SubstitutionStatus.unassigned
    assert outcome.replacement.substitute_teacher_id is None
    assert _workload(db, "C1") == 0

    with pytest.raises(InvalidStateError):
        request_replacement(db, actor=manager(), record_id=record.id, reason="Second attempt")
    db.rollback()
    assert _workload(db, "C1") == 0


def test_rematch_fills_unassigned_record_in_place(db, school, manager):
    record = _period_two_record(db, school, c2_current=3, max_substitutions=3)
    outcome = request_replacement(db, actor=manager(), record_id=record.id, reason="Substitute unwell")
    db.commit()
    successor_id = outcome.replacement.id

    # The in-place re-match does not carry the replacement exclusion forward.
    rematched = rematch_substitution(db, actor=manager(), record_id=successor_id)
    db.commit()

    assert rematched.assigned is True
    assert rematched.previous is None
    assert rematched.record.id == successor_id
    assert rematched.record.status == SubstitutionStatus.pending
    assert rematched.record.substitute_teacher_id == "C1"
    assert _workload(db, "C1") == 1
    assert _workload(db, "C2") == 3


def test_rematch_with_manual_substitute_must_pass_filters(db, school, manager):
    monday_scenario(school)
    school.slot("C1", "Monday", 4, "A", class_id="class-2")
    db.get(AssignmentConfig, "school-1").excluded_teacher_ids = ["C1", "C2"]
    db.commit()
    result = submit_leave(
        db,
        requester=manager(),
        teacher_id="T",
        absence_date=MONDAY,
        leave_type=LeaveType.on_duty,
        reason="Workshop",
    )
    db.commit()
    db.get(AssignmentConfig, "school-1").excluded_teacher_ids = []
    db.commit()
    period_four = next(item for item in result.records if item.period_number == 4)

    with pytest.raises(ValidationError) as exc_info:
        rematch_substitution(db, actor=manager(), record_id=period_four.id, substitute_teacher_id="C1")
    assert exc_info.value.details["reason"] == "timetabled"
    db.rollback()
    assert _workload(db, "C1") == 0

    rematched = rematch_substitution(db, actor=manager(), record_id=period_four.id, substitute_teacher_id="C2")
    db.commit()
    assert rematched.record.substitute_teacher_id == "C2"


def test_rematch_of_cancelled_record_creates_successor(db, school, manager):
    record = _period_two_record(db, school)
    cancel_substitution(db, actor=manager(), record_id=record.id, reason="Timetable changed")
    db.commit()

    rematched = rematch_substitution(db, actor=manager(), record_id=record.id)
    db.commit()

    assert rematched.previous is not None and rematched.previous.id == record.id
    assert rematched.record.id != record.id
    assert rematched.record.supersedes_id == record.id
    assert rematched.record.status == SubstitutionStatus.pending
    db.refresh(record)
    assert record.status == SubstitutionStatus.cancelled
    assert record.lineage == SupersededBy(rematched.record.id)

    with pytest.raises(InvalidStateError):
        rematch_substitution(db, actor=manager(), record_id=record.id)


def test_complete_keeps_capacity_by_default(db, school, manager):
    record = _period_two_record(db, school)
    confirm_substitution(db, actor=manager(), record_id=record.id)
    completed = complete_substitution(
        db,
        actor=db.get(User, "user-C1"),
        record_id=record.id,
        attendance_marked=True,
        lessons_completed=True,
        students_behavior="good",
        feedback="Covered chapter 4",
    )
    db.commit()

    assert completed.status == SubstitutionStatus.completed
    assert completed.attendance_marked is True
    assert completed.feedback == "Covered chapter 4"
    assert _workload(db, "C1") == 1


def test_complete_releases_capacity_when_configured(db, school, manager):
    record = _period_two_record(db, school)
    db.get(AssignmentConfig, "school-1").release_capacity_on_completion = True
    db.commit()

    confirm_substitution(db, actor=manager(), record_id=record.id)
    complete_substitution(db, actor=manager(), record_id=record.id)
    db.commit()
    assert _workload(db, "C1") == 0


def test_pending_record_cannot_be_completed(db, school, manager):
    record = _period_two_record(db, school)
    with pytest.raises(InvalidStateError):
        complete_substitution(db, actor=manager(), record_id=record.id)
