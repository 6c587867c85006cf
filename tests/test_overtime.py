from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.exceptions import NoOvertimeRuleError, ValidationFailedError
from app.core.timeutils import iso_period_key
from app.models.overtime_balance import OvertimeBalance
from app.models.overtime_rule import OvertimeRule
from app.models.time_entry import TimeEntry
from app.services.overtime_service import OvertimeService, partition_overtime

MONDAY = date(2024, 1, 8)


def _week(hours):
    return {MONDAY + timedelta(days=i): h for i, h in enumerate(hours)}


def _rule(db_session, org, daily=8.0, weekly=40.0):
    rule = OvertimeRule(organization_id=org.id, name="Standard", daily_threshold=daily, weekly_threshold=weekly, is_default=True)
    db_session.add(rule)
    db_session.commit()
    return rule


def _entry(db_session, user, day, start_hour, hours, break_minutes=0, status="approved"):
    clock_in = datetime(day.year, day.month, day.day, start_hour, tzinfo=timezone.utc)
    entry = TimeEntry(
        organization_id=user.organization_id,
        user_id=user.id,
        clock_in_at=clock_in,
        clock_out_at=clock_in + timedelta(hours=hours),
        break_minutes=break_minutes,
        entry_type="manual",
        approval_status=status,
    )
    db_session.add(entry)
    db_session.commit()
    return entry


# ------------------------------------------------------------------
# Partition
# ------------------------------------------------------------------

def test_daily_excess_then_weekly_excess():
    split = partition_overtime(_week([9, 9, 9, 9, 9]), 8, 40)
    assert split.regular_hours == 35.0
    assert split.overtime_hours == 10.0


def test_under_both_thresholds():
    split = partition_overtime(_week([8, 8, 4]), 8, 40)
    assert (split.regular_hours, split.overtime_hours) == (20.0, 0.0)


def test_weekly_threshold_only():
    split = partition_overtime(_week([8, 8, 8, 8, 8, 6]), 8, 40)
    assert (split.regular_hours, split.overtime_hours) == (40.0, 6.0)


def test_weekly_move_is_capped_by_regular_hours():
    split = partition_overtime(_week([12]), 2, 1)
    # Weekly excess is 11 but only 2 regular hours exist to move
    assert (split.regular_hours, split.overtime_hours) == (0.0, 12.0)


def test_split_rounds_to_two_decimals():
    split = partition_overtime({MONDAY: 8 + 1 / 3}, 8, 40)
    assert split.regular_hours == 8.0
    assert split.overtime_hours == 0.33


def test_iso_period_key_uses_iso_year():
    assert iso_period_key(date(2024, 1, 10)) == "2024-W02"
    # 2024-12-30 belongs to ISO week 1 of 2025
    assert iso_period_key(date(2024, 12, 30)) == "2025-W01"


# ------------------------------------------------------------------
# Calculator
# ------------------------------------------------------------------

def test_calculate_persists_balance(service_for, db_session, org, manager_user, employee_user):
    _rule(db_session, org)
    for i in range(5):
        _entry(db_session, employee_user, MONDAY + timedelta(days=i), 8, 9.5, break_minutes=30)
    # Ignored: pending, rejected, open, and outside the period
    _entry(db_session, employee_user, date(2024, 1, 13), 8, 5, status="pending")
    _entry(db_session, employee_user, date(2024, 1, 13), 14, 2, status="rejected")
    _entry(db_session, employee_user, date(2024, 1, 15), 8, 10)
    db_session.add(TimeEntry(
        organization_id=org.id, user_id=employee_user.id,
        clock_in_at=datetime(2024, 1, 14, 8, tzinfo=timezone.utc), approval_status="approved",
    ))
    db_session.commit()

    service = service_for(OvertimeService, manager_user)
    balance = service.calculate(
        employee_user.id,
        datetime(2024, 1, 8, tzinfo=timezone.utc),
        datetime(2024, 1, 15, tzinfo=timezone.utc),
    )
    assert balance.period == "2024-W02"
    assert balance.regular_hours == 35.0
    assert balance.overtime_hours == 10.0
    assert balance.overtime_multiplier == 1.5
    assert balance.carry_over_hours == 0.0

    # Recalculation updates the same row
    service.calculate(employee_user.id, datetime(2024, 1, 8, tzinfo=timezone.utc), datetime(2024, 1, 9, tzinfo=timezone.utc))
    rows = db_session.query(OvertimeBalance).filter(OvertimeBalance.user_id == employee_user.id).all()
    assert len(rows) == 1
    assert (rows[0].regular_hours, rows[0].overtime_hours) == (8.0, 1.0)


def test_calculate_without_default_rule(service_for, manager_user, employee_user):
    service = service_for(OvertimeService, manager_user)
    with pytest.raises(NoOvertimeRuleError):
        service.calculate(employee_user.id, datetime(2024, 1, 8), datetime(2024, 1, 15))


def test_calculate_api(client, db_session, org, manager_user, employee_user, auth_headers):
    _rule(db_session, org)
    _entry(db_session, employee_user, MONDAY, 8, 10)
    body = {"user_id": employee_user.id, "start_date": "2024-01-08", "end_date": "2024-01-15"}

    response = client.post("/api/overtime/calculate", json=body, headers=auth_headers(employee_user))
    assert response.status_code == 403

    response = client.post("/api/overtime/calculate", json=body, headers=auth_headers(manager_user))
    assert response.status_code == 200
    assert response.json()["regular_hours"] == 8.0
    assert response.json()["overtime_hours"] == 2.0

    reversed_body = {**body, "end_date": "2024-01-01"}
    response = client.post("/api/overtime/calculate", json=reversed_body, headers=auth_headers(manager_user))
    assert response.status_code == 400


def test_calculate_api_without_rule(client, manager_user, employee_user, auth_headers):
    body = {"user_id": employee_user.id, "start_date": "2024-01-08", "end_date": "2024-01-15"}
    response = client.post("/api/overtime/calculate", json=body, headers=auth_headers(manager_user))
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "NO_OVERTIME_RULE"


def test_balance_is_created_lazily(client, employee_user, manager_user, auth_headers):
    response = client.get("/api/overtime/balance", headers=auth_headers(employee_user))
    assert response.status_code == 200
    data = response.json()
    assert data["period"] == "2024-W02"
    assert (data["regular_hours"], data["overtime_hours"]) == (0.0, 0.0)

    response = client.get(f"/api/overtime/balance/{manager_user.id}", headers=auth_headers(employee_user))
    assert response.status_code == 403

    response = client.get(
        f"/api/overtime/balance/{employee_user.id}", params={"period": "2024-W02"}, headers=auth_headers(manager_user)
    )
    assert response.json()["id"] == data["id"]


# ------------------------------------------------------------------
# Rules and requests
# ------------------------------------------------------------------

def test_new_default_rule_replaces_previous(client, admin_user, manager_user, auth_headers):
    headers = auth_headers(admin_user)
    client.post("/api/overtime/rules", json={"name": "Old", "is_default": True}, headers=headers)
    client.post("/api/overtime/rules", json={"name": "New", "daily_threshold": 10, "is_default": True}, headers=headers)

    assert client.post("/api/overtime/rules", json={"name": "X"}, headers=auth_headers(manager_user)).status_code == 403

    rules = client.get("/api/overtime/rules", headers=auth_headers(manager_user)).json()["rules"]
    defaults = [r["name"] for r in rules if r["is_default"]]
    assert defaults == ["New"]


def test_overtime_request_lifecycle(client, employee_user, manager_user, auth_headers):
    employee = auth_headers(employee_user)
    manager = auth_headers(manager_user)
    body = {"start_date": "2024-01-20", "end_date": "2024-01-20", "estimated_hours": 6, "reason": "Migration"}

    created = client.post("/api/overtime/request", json=body, headers=employee)
    assert created.status_code == 201
    request_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    bad = client.post("/api/overtime/request", json={**body, "end_date": "2024-01-19"}, headers=employee)
    assert bad.status_code == 400
    assert client.post("/api/overtime/request", json={**body, "estimated_hours": 200}, headers=employee).status_code == 422

    response = client.put(f"/api/overtime/requests/{request_id}/approve", json={"decision": "deny"}, headers=manager)
    assert response.status_code == 400

    response = client.put(
        f"/api/overtime/requests/{request_id}/approve",
        json={"decision": "deny", "denial_reason": "Not budgeted"},
        headers=manager,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "denied"
    assert response.json()["denial_reason"] == "Not budgeted"

    response = client.put(f"/api/overtime/requests/{request_id}/approve", json={"decision": "approve"}, headers=manager)
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "PRECONDITION_FAILED"

    own = client.get("/api/overtime/requests", headers=employee).json()["requests"]
    assert [r["id"] for r in own] == [request_id]
    team = client.get("/api/overtime/requests", params={"user_id": employee_user.id, "status": "denied"}, headers=manager)
    assert len(team.json()["requests"]) == 1


def test_blank_overtime_reason_rejected(client, service_for, employee_user, auth_headers):
    body = {"start_date": "2024-01-20", "end_date": "2024-01-20", "estimated_hours": 4, "reason": "   "}
    response = client.post("/api/overtime/request", json=body, headers=auth_headers(employee_user))
    assert response.status_code == 422

    service = service_for(OvertimeService, employee_user)
    with pytest.raises(ValidationFailedError):
        service.create_request(date(2024, 1, 20), date(2024, 1, 20), 4, "   ")
