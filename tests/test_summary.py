from datetime import datetime, timezone

from app.models.time_entry import TimeEntry
from app.services.summary_service import TimeSummaryService


def _entry(db_session, user, start, end, break_minutes=0, status="approved"):
    entry = TimeEntry(
        organization_id=user.organization_id,
        user_id=user.id,
        clock_in_at=start,
        clock_out_at=end,
        break_minutes=break_minutes,
        approval_status=status,
    )
    db_session.add(entry)
    db_session.commit()
    return entry


def _at(day, hour, minute=0):
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def test_hours_this_week_counts_closed_entries_net_of_breaks(service_for, db_session, employee_user):
    _entry(db_session, employee_user, _at(8, 9), _at(8, 17), break_minutes=30)
    _entry(db_session, employee_user, _at(9, 8), _at(9, 12))
    _entry(db_session, employee_user, _at(9, 13), _at(9, 14, 15), status="pending")
    _entry(db_session, employee_user, _at(9, 15), _at(9, 18), status="rejected")
    _entry(db_session, employee_user, _at(5, 9), _at(5, 17))  # previous week
    _entry(db_session, employee_user, _at(10, 11), None)  # still open

    service = service_for(TimeSummaryService, employee_user)
    assert service.hours_this_week(employee_user.id) == 12.75


def test_summary_endpoint(client, db_session, employee_user, leave_type, make_balance, auth_headers):
    _entry(db_session, employee_user, _at(8, 9), _at(8, 17))
    open_entry = _entry(db_session, employee_user, _at(10, 9), None)
    make_balance(employee_user, leave_type, used_ytd=2)
    make_balance(employee_user, leave_type, year=2023)

    response = client.get("/api/time/summary", headers=auth_headers(employee_user))
    assert response.status_code == 200
    data = response.json()
    assert data["hours_this_week"] == 8.0
    assert data["target_hours"] == 40
    assert data["active_entry"]["id"] == open_entry.id
    assert len(data["leave_balances"]) == 1
    assert data["leave_balances"][0]["remaining"] == 18.0


def test_summary_without_activity(client, employee_user, auth_headers):
    data = client.get("/api/time/summary", headers=auth_headers(employee_user)).json()
    assert data["hours_this_week"] == 0
    assert data["active_entry"] is None
    assert data["leave_balances"] == []
