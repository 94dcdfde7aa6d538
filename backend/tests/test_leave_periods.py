from datetime import date, datetime, time

import pytest

from app.core.exceptions import SubmissionWindowClosedError
from app.models.absence_request import LeaveType
from app.services.intake import ensure_submission_window, periods_for_leave_type

WINDOW_START = time(1, 0)
WINDOW_END = time(7, 20)
TODAY = date(2026, 10, 19)


@pytest.mark.parametrize(
    ("leave_type", "expected"),
    [
        (LeaveType.full_day, (1, 2, 3, 4, 5, 6, 7, 8, 9)),
        (LeaveType.on_duty, (1, 2, 3, 4, 5, 6, 7, 8, 9)),
        (LeaveType.half_day_morning, (1, 2, 3, 4)),
        (LeaveType.half_day_afternoon, (5, 6, 7, 8, 9)),
        (LeaveType.permission_morning, (1, 2)),
        (LeaveType.permission_evening, (8, 9)),
    ],
)
def test_leave_type_maps_to_fixed_periods(leave_type, expected):
    assert periods_for_leave_type(leave_type) == expected


def test_every_leave_type_has_a_period_mapping():
    for leave_type in LeaveType:
        periods = periods_for_leave_type(leave_type)
        assert periods == tuple(sorted(periods))
        assert all(1 <= period <= 9 for period in periods)


def _check(now: datetime, *, is_manager: bool = False, absence_date: date = TODAY) -> None:
    ensure_submission_window(
        absence_date=absence_date,
        now=now,
        is_manager=is_manager,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
    )


@pytest.mark.parametrize("clock", [time(1, 0), time(4, 30), time(7, 20)])
def test_teacher_can_submit_inside_window(clock):
    _check(datetime.combine(TODAY, clock))


@pytest.mark.parametrize("clock", [time(0, 59), time(7, 21), time(9, 0)])
def test_teacher_is_rejected_outside_window(clock):
    with pytest.raises(SubmissionWindowClosedError) as exc_info:
        _check(datetime.combine(TODAY, clock))
    assert exc_info.value.status_code == 403
    assert exc_info.value.details["window_end"] == "07:20"


def test_teacher_cannot_submit_for_another_day():
    with pytest.raises(SubmissionWindowClosedError, match="today"):
        _check(datetime.combine(TODAY, time(5, 0)), absence_date=date(2026, 10, 20))


def test_manager_bypasses_window_and_date_rule():
    _check(datetime.combine(TODAY, time(9, 0)), is_manager=True, absence_date=date(2026, 10, 21))
