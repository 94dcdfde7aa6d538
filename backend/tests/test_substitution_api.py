from datetime import datetime, time

import pytest

from app.services import intake

from conftest import MONDAY, auth_headers, monday_scenario


@pytest.fixture()
def monday_school(seeded_school):
    monday_scenario(seeded_school)
    return seeded_school


def _freeze_clock(monkeypatch, clock: time) -> None:
    monkeypatch.setattr(intake, "local_now", lambda: datetime.combine(MONDAY, clock))


def _submit(client, user_id: str, **overrides):
    body = {"date": MONDAY.isoformat(), "leave_type": "on_duty", "reason": "Inter-school debate"}
    body.update(overrides)
    return client.post("/api/leaves", json=body, headers=auth_headers(user_id))


def test_teacher_at_nine_is_rejected_but_manager_succeeds(client, monday_school, monkeypatch):
    _freeze_clock(monkeypatch, time(9, 0))

    rejected = _submit(client, "user-T")
    assert rejected.status_code == 403
    assert "07:20" in rejected.json()["message"]
    assert rejected.json()["details"]["submitted_at"] == "09:00"

    listing = client.get("/api/substitutions", headers=auth_headers("manager-1"))
    assert listing.status_code == 200
    assert listing.json() == []

    accepted = _submit(client, "manager-1", teacher_id="T")
    assert accepted.status_code == 201
    payload = accepted.json()
    assert payload["success"] is True
    assert payload["periods_requested"] == 2
    assert payload["periods_assigned"] == 2
    assert [item["substitute_teacher_id"] for item in payload["substitutions"]] == ["C1", "C2"]
    assert payload["substitutions"][0]["lineage"] == {"kind": "active", "record_id": None}


def test_teacher_inside_window_submits_own_leave(client, monday_school, monkeypatch):
    _freeze_clock(monkeypatch, time(6, 30))
    response = _submit(client, "user-T", leave_type="half_day_afternoon")
    assert response.status_code == 201
    assert response.json()["periods_requested"] == 0
    assert "no timetabled periods" in response.json()["message"]


def test_invalid_leave_type_is_rejected_by_validation(client, monday_school):
    response = _submit(client, "manager-1", teacher_id="T", leave_type="sabbatical")
    assert response.status_code == 422


def test_missing_token_is_unauthorized(client):
    response = client.get("/api/substitutions")
    assert response.status_code in {401, 403}


def test_unknown_teacher_returns_not_found(client, monday_school):
    response = _submit(client, "manager-1", teacher_id="nobody")
    assert response.status_code == 404
    assert response.json()["details"]["resource_type"] == "Teacher"


def test_full_lifecycle_over_http(client, monday_school):
    created = _submit(client, "manager-1", teacher_id="T", leave_type="permission_morning")
    assert created.status_code == 201
    record_id = created.json()["substitutions"][0]["id"]

    confirmed = client.post(f"/api/substitutions/{record_id}/confirm", headers=auth_headers("user-C1"))
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"

    again = client.post(f"/api/substitutions/{record_id}/confirm", headers=auth_headers("user-C1"))
    assert again.status_code == 409

    completed = client.post(
        f"/api/substitutions/{record_id}/complete",
        json={"attendance_marked": True, "lessons_completed": True, "feedback": "Revision worksheet"},
        headers=auth_headers("user-C1"),
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["attendance_marked"] is True

    fetched = client.get(f"/api/substitutions/{record_id}", headers=auth_headers("user-T"))
    assert fetched.status_code == 200
    assert fetched.json()["feedback"] == "Revision worksheet"


def test_replacement_over_http_returns_both_records(client, monday_school):
    created = _submit(client, "manager-1", teacher_id="T", leave_type="permission_morning")
    record_id = created.json()["substitutions"][0]["id"]

    response = client.post(
        f"/api/substitutions/{record_id}/replacement",
        json={"reason": "Called for invigilation"},
        headers=auth_headers("user-C1"),
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["replacement_found"] is True
    assert payload["original"]["status"] == "substituted"
    assert payload["original"]["lineage"] == {"kind": "superseded", "record_id": payload["replacement"]["id"]}
    assert payload["replacement"]["substitute_teacher_id"] == "C2"
    assert payload["replacement"]["supersedes_id"] == record_id


def test_cancel_requires_manager_and_rematch_creates_successor(client, monday_school):
    created = _submit(client, "manager-1", teacher_id="T", leave_type="permission_morning")
    record_id = created.json()["substitutions"][0]["id"]

    forbidden = client.post(
        f"/api/substitutions/{record_id}/cancel",
        json={"reason": "No longer needed"},
        headers=auth_headers("user-C1"),
    )
    assert forbidden.status_code == 403

    cancelled = client.post(
        f"/api/substitutions/{record_id}/cancel",
        json={"reason": "No longer needed"},
        headers=auth_headers("manager-1"),
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    rematched = client.post(f"/api/substitutions/{record_id}/rematch", json={}, headers=auth_headers("manager-1"))
    assert rematched.status_code == 200
    body = rematched.json()
    assert body["assigned"] is True
    assert body["previous"]["id"] == record_id
    assert body["record"]["supersedes_id"] == record_id


def test_list_filters_and_teacher_scope(client, monday_school):
    _submit(client, "manager-1", teacher_id="T")

    by_status = client.get("/api/substitutions", params={"status": "pending"}, headers=auth_headers("manager-1"))
    assert by_status.status_code == 200
    assert len(by_status.json()) == 2

    own = client.get("/api/substitutions", headers=auth_headers("user-C2"))
    assert [item["substitute_teacher_id"] for item in own.json()] == ["C2"]

    by_date = client.get(
        "/api/substitutions",
        params={"date": "2026-10-20"},
        headers=auth_headers("manager-1"),
    )
    assert by_date.json() == []


def test_available_candidates_are_ranked(client, monday_school):
    response = client.get(
        "/api/substitutions/available",
        params={
            "date": MONDAY.isoformat(),
            "period": 2,
            "subject_id": "A",
            "class_id": "class-1",
            "absent_teacher_id": "T",
        },
        headers=auth_headers("manager-1"),
    )
    assert response.status_code == 200
    ranked = response.json()
    assert [item["teacher_id"] for item in ranked] == ["C1", "C2"]
    assert ranked[0]["score"] == 75
    assert ranked[0]["subject_match"] is True
    assert ranked[1]["score"] == 5


def test_available_candidates_require_manager(client, monday_school):
    response = client.get(
        "/api/substitutions/available",
        params={"date": MONDAY.isoformat(), "period": 2, "subject_id": "A", "class_id": "class-1"},
        headers=auth_headers("user-C1"),
    )
    assert response.status_code == 403


def test_stats_overview_counts_statuses_and_workload(client, monday_school):
    _submit(client, "manager-1", teacher_id="T")

    response = client.get("/api/substitutions/stats/overview", headers=auth_headers("manager-1"))
    assert response.status_code == 200
    stats = response.json()
    assert stats["total"] == 2
    assert stats["by_status"]["pending"] == 2
    assert stats["reasons"] == {"Inter-school debate": 2}
    assert stats["subject_distribution"] == {"A": 1, "B": 1}
    assert {item["teacher_id"] for item in stats["top_substitutes"]} == {"C1", "C2"}
    workload = {item["teacher_id"]: item for item in stats["teacher_workload"]}
    assert workload["C2"]["current_substitutions"] == 3
    assert workload["C2"]["utilization_rate"] == 100.0


def test_teacher_availability_lists_free_periods_and_upcoming_cover(client, monday_school):
    _submit(client, "manager-1", teacher_id="T")

    response = client.get("/api/teachers/T/availability", headers=auth_headers("manager-1"))
    assert response.status_code == 200
    body = response.json()
    assert 2 not in body["weekly_free_periods"]["Monday"]
    assert 4 not in body["weekly_free_periods"]["Monday"]
    assert body["weekly_free_periods"]["Tuesday"] == list(range(1, 10))

    substitute_view = client.get("/api/teachers/C1/availability", headers=auth_headers("user-C1"))
    assert substitute_view.status_code == 200
    assert [item["period_number"] for item in substitute_view.json()["upcoming_substitutions"]] == [2]

    other_view = client.get("/api/teachers/C1/availability", headers=auth_headers("user-C2"))
    assert other_view.status_code == 403
