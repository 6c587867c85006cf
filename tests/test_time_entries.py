from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import AlreadyClockedInError, OverlapConflictError
from app.models.audit_record import AuditEntity, AuditRecord
from app.models.time_entry import TimeEntry
from app.services.time_entry_service import (
    TimeEntryService,
    default_requires_approval,
    intervals_overlap,
)

FUTURE_DAY = "2024-01-12"  # Friday after the fixed "now"
PAST_DAY = "2024-01-09"


def _at(hour, minute=0, day=12):
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def _manual(client, headers, day=FUTURE_DAY, start="09:00", end="17:00", **extra):
    body = {"date": day, "start_time": start, "end_time": end, **extra}
    return client.post("/api/time/entries", json=body, headers=headers)


# ------------------------------------------------------------------
# Overlap rules
# ------------------------------------------------------------------

def test_shared_boundary_is_not_an_overlap():
    assert not intervals_overlap(_at(17), _at(18), _at(9), _at(17))
    assert not intervals_overlap(_at(9), _at(17), _at(17), _at(18))


def test_partial_and_containing_ranges_overlap():
    assert intervals_overlap(_at(16), _at(18), _at(9), _at(17))
    assert intervals_overlap(_at(8), _at(18), _at(9), _at(17))
    assert intervals_overlap(_at(10), _at(11), _at(9), _at(17))


@pytest.mark.parametrize("a,b", [
    ((9, 17), (16, 18)),
    ((9, 17), (17, 18)),
    ((9, 12), (10, 11)),
    ((9, 10), (11, 12)),
])
def test_overlap_is_symmetric(a, b):
    first = (_at(a[0]), _at(a[1]))
    second = (_at(b[0]), _at(b[1]))
    assert intervals_overlap(*first, *second) == intervals_overlap(*second, *first)


def test_default_approval_predicate():
    now = datetime(2024, 1, 10, 12, tzinfo=timezone.utc)
    assert default_requires_approval(date(2024, 1, 9), "manual", now)
    assert default_requires_approval(date(2024, 1, 10), "manual", now)
    assert not default_requires_approval(date(2024, 1, 11), "manual", now)
    assert not default_requires_approval(date(2024, 1, 9), "clock", now)


def test_open_entry_runs_until_now(service_for, employee_user, clock):
    """An open entry conflicts with ranges that start before the current time."""
    service = service_for(TimeEntryService, employee_user)
    service.clock_in()  # 12:00 on the 10th

    assert service.find_overlap(employee_user.id, _at(12, 30, day=10), _at(13, day=10)) is None

    clock.advance(hours=2)
    assert service.find_overlap(employee_user.id, _at(12, 30, day=10), _at(13, day=10)) is not None


def test_rejected_entries_do_not_block(service_for, employee_user):
    service = service_for(TimeEntryService, employee_user)
    entry = service.create_manual(date(2024, 1, 12), time(9), time(17))
    service.delete_entry(entry.id)

    again = service.create_manual(date(2024, 1, 12), time(9), time(17))
    assert again.id != entry.id


def test_predicate_failure_defaults_to_pending(service_for, employee_user):
    def broken(*_):
        raise RuntimeError("policy store down")

    service = service_for(TimeEntryService, employee_user, requires_approval=broken)
    entry = service.create_manual(date(2024, 1, 12), time(9), time(10))
    assert entry.approval_status == "pending"


# ------------------------------------------------------------------
# Clock in / out
# ------------------------------------------------------------------

def test_clock_in_and_out(client, employee_user, auth_headers, clock):
    headers = auth_headers(employee_user)

    response = client.post("/api/time/clock-in", headers=headers)
    assert response.status_code == 201
    entry = response.json()
    assert entry["entry_type"] == "clock"
    assert entry["approval_status"] == "approved"
    assert entry["clock_out_at"] is None

    response = client.post("/api/time/clock-in", headers=headers)
    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "ALREADY_CLOCKED_IN"

    clock.advance(hours=3)
    response = client.post("/api/time/clock-out", headers=headers)
    assert response.status_code == 200
    assert response.json()["clock_out_at"].startswith("2024-01-10T15:00:00")


def test_clock_out_without_open_entry(client, employee_user, auth_headers):
    response = client.post("/api/time/clock-out", headers=auth_headers(employee_user))
    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "NO_ACTIVE_ENTRY"


def test_store_rejects_second_open_entry(db_session, org, employee_user):
    db_session.add(TimeEntry(organization_id=org.id, user_id=employee_user.id, clock_in_at=_at(8)))
    db_session.commit()

    with pytest.raises(IntegrityError):
        with db_session.begin_nested():
            db_session.add(TimeEntry(organization_id=org.id, user_id=employee_user.id, clock_in_at=_at(9)))


def test_clock_in_race_surfaces_as_already_clocked_in(service_for, employee_user, monkeypatch):
    service = service_for(TimeEntryService, employee_user)
    service.clock_in()

    # Simulate a concurrent request that passed the pre-check
    monkeypatch.setattr(service, "active_entry", lambda user_id: None)
    with pytest.raises(AlreadyClockedInError):
        service.clock_in()


# ------------------------------------------------------------------
# Manual entries
# ------------------------------------------------------------------

def test_manual_entry_in_the_future_is_auto_approved(client, employee_user, auth_headers):
    response = _manual(client, auth_headers(employee_user), project_task="  ", notes="Client visit")
    assert response.status_code == 201
    data = response.json()
    assert data["approval_status"] == "approved"
    assert data["approver_user_id"] == employee_user.id
    assert data["approved_at"] is not None
    assert data["project_task"] is None
    assert data["notes"] == "Client visit"


def test_manual_entry_in_the_past_waits_for_approval(client, employee_user, auth_headers):
    response = _manual(client, auth_headers(employee_user), day=PAST_DAY)
    assert response.status_code == 201
    data = response.json()
    assert data["approval_status"] == "pending"
    assert data["approver_user_id"] is None


def test_manual_entry_reversed_range(client, employee_user, auth_headers):
    response = _manual(client, auth_headers(employee_user), start="17:00", end="09:00")
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "INVALID_RANGE"


def test_adjacent_entry_accepted_overlapping_entry_rejected(client, employee_user, auth_headers):
    headers = auth_headers(employee_user)
    assert _manual(client, headers).status_code == 201

    assert _manual(client, headers, start="17:00", end="18:00").status_code == 201

    response = _manual(client, headers, start="16:00", end="18:00")
    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "TIME_ENTRY_OVERLAP"


def test_manual_entry_break_bounds(client, employee_user, auth_headers):
    response = _manual(client, auth_headers(employee_user), break_minutes=1441)
    assert response.status_code == 422


# ------------------------------------------------------------------
# Edits
# ------------------------------------------------------------------

def test_update_writes_one_audit_row_per_changed_field(client, employee_user, auth_headers):
    headers = auth_headers(employee_user)
    entry = _manual(client, headers).json()

    response = client.put(
        f"/api/time/entries/{entry['id']}",
        json={"end_time": "18:00", "notes": "Release night", "break_minutes": 0, "change_reason": "Stayed late"},
        headers=headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["clock_out_at"].startswith("2024-01-12T18:00:00")
    assert data["edited_by"] == employee_user.id
    assert data["warnings"] == []

    audit = client.get(f"/api/time/entries/{entry['id']}/audit", headers=headers).json()["audit"]
    fields = {row["field_name"]: row for row in audit}
    # break_minutes did not change
    assert set(fields) == {"clock_out_at", "notes"}
    assert fields["clock_out_at"]["old_value"] == "2024-01-12T17:00:00+00:00"
    assert fields["clock_out_at"]["new_value"] == "2024-01-12T18:00:00+00:00"
    assert fields["notes"]["reason"] == "Stayed late"


def test_update_with_empty_patch(client, employee_user, auth_headers):
    headers = auth_headers(employee_user)
    entry = _manual(client, headers).json()
    response = client.put(f"/api/time/entries/{entry['id']}", json={"change_reason": "nothing"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "VALIDATION_FAILED"


def test_update_rechecks_merged_range_and_overlap(client, employee_user, auth_headers):
    headers = auth_headers(employee_user)
    first = _manual(client, headers).json()
    second = _manual(client, headers, start="18:00", end="20:00").json()

    response = client.put(f"/api/time/entries/{first['id']}", json={"start_time": "17:30"}, headers=headers)
    assert response.status_code == 400

    response = client.put(f"/api/time/entries/{second['id']}", json={"start_time": "16:00"}, headers=headers)
    assert response.status_code == 409

    # Moving an entry within its own range is not a self-overlap
    response = client.put(f"/api/time/entries/{second['id']}", json={"start_time": "18:30"}, headers=headers)
    assert response.status_code == 200


def test_editing_past_manual_entry_needs_edit_past(client, employee_user, hr_user, auth_headers):
    entry = _manual(client, auth_headers(employee_user), day=PAST_DAY).json()

    response = client.put(f"/api/time/entries/{entry['id']}", json={"notes": "x"}, headers=auth_headers(employee_user))
    assert response.status_code == 403

    response = client.put(f"/api/time/entries/{entry['id']}", json={"notes": "fixed"}, headers=auth_headers(hr_user))
    assert response.status_code == 200
    assert response.json()["edited_by"] == hr_user.id


def test_other_users_entry_needs_team_visibility(client, employee_user, make_user, auth_headers):
    from app.models.user import UserRole
    colleague = make_user(UserRole.EMPLOYEE, "colleague")
    entry = _manual(client, auth_headers(employee_user)).json()

    response = client.delete(f"/api/time/entries/{entry['id']}", headers=auth_headers(colleague))
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "PERMISSION_DENIED"


def test_entries_are_tenant_scoped(client, db_session, employee_user, make_user, auth_headers):
    from app.models.organization import Organization
    from app.models.user import UserRole
    other_org = Organization(name="Beta", slug="beta-tenant")
    db_session.add(other_org)
    db_session.commit()
    outsider = make_user(UserRole.HR_ADMIN, "outsider", organization=other_org)

    entry = _manual(client, auth_headers(employee_user)).json()
    response = client.get(f"/api/time/entries/{entry['id']}/audit", headers=auth_headers(outsider))
    assert response.status_code == 404


# ------------------------------------------------------------------
# Delete and review
# ------------------------------------------------------------------

def test_delete_is_a_soft_reject(client, db_session, employee_user, auth_headers):
    headers = auth_headers(employee_user)
    entry = _manual(client, headers).json()

    response = client.delete(f"/api/time/entries/{entry['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    stored = db_session.get(TimeEntry, entry["id"])
    db_session.refresh(stored)
    assert stored.approval_status == "rejected"

    # Second delete is a no-op
    assert client.delete(f"/api/time/entries/{entry['id']}", headers=headers).status_code == 200
    rows = db_session.query(AuditRecord).filter(
        AuditRecord.entity_type == AuditEntity.TIME_ENTRY.value,
        AuditRecord.entity_id == entry["id"],
    ).all()
    assert len(rows) == 1
    assert rows[0].reason == "Entry deleted"
    assert rows[0].new_value == "rejected"


def test_review_pending_entry(client, employee_user, manager_user, auth_headers):
    entry = _manual(client, auth_headers(employee_user), day=PAST_DAY).json()
    manager = auth_headers(manager_user)

    pending = client.get("/api/time/entries/pending", headers=manager).json()
    assert [e["id"] for e in pending["entries"]] == [entry["id"]]

    response = client.put(f"/api/time/entries/{entry['id']}/approve", json={"decision": "approve"}, headers=manager)
    assert response.status_code == 200
    data = response.json()
    assert data["approval_status"] == "approved"
    assert data["approver_user_id"] == manager_user.id
    assert data["approved_at"] is not None

    response = client.put(f"/api/time/entries/{entry['id']}/approve", json={"decision": "reject", "reason": "dup"}, headers=manager)
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "PRECONDITION_FAILED"
    assert "approved" in response.json()["errors"][0]["msg"]

    audit = client.get(f"/api/time/entries/{entry['id']}/audit", headers=manager).json()["audit"]
    assert audit[0]["field_name"] == "approval_status"
    assert audit[0]["old_value"] == "pending"
    assert audit[0]["new_value"] == "approved"


def test_reject_requires_reason(client, employee_user, manager_user, auth_headers):
    entry = _manual(client, auth_headers(employee_user), day=PAST_DAY).json()
    manager = auth_headers(manager_user)

    response = client.put(f"/api/time/entries/{entry['id']}/approve", json={"decision": "reject"}, headers=manager)
    assert response.status_code == 400

    response = client.put(
        f"/api/time/entries/{entry['id']}/approve",
        json={"decision": "reject", "reason": "Not on site"},
        headers=manager,
    )
    assert response.status_code == 200
    assert response.json()["approval_status"] == "rejected"
    assert response.json()["approved_at"] is None


def test_employee_cannot_review(client, employee_user, auth_headers):
    entry = _manual(client, auth_headers(employee_user), day=PAST_DAY).json()
    response = client.put(
        f"/api/time/entries/{entry['id']}/approve", json={"decision": "approve"}, headers=auth_headers(employee_user)
    )
    assert response.status_code == 403


# ------------------------------------------------------------------
# Listing
# ------------------------------------------------------------------

def test_list_entries_filters_and_paginates(client, employee_user, manager_user, auth_headers):
    headers = auth_headers(employee_user)
    _manual(client, headers, start="08:00", end="09:00", project_task="Apollo")
    _manual(client, headers, start="10:00", end="11:00", project_task="apollo-ops")
    _manual(client, headers, day="2024-01-15", start="10:00", end="11:00", project_task="Zeus")

    response = client.get("/api/time/entries", params={"project_task": "APOLLO", "page_size": 1}, headers=headers)
    data = response.json()
    assert data["pagination"] == {"page": 1, "page_size": 1, "total": 2, "total_pages": 2}
    assert data["entries"][0]["project_task"] == "apollo-ops"  # newest clock-in first

    response = client.get(
        "/api/time/entries", params={"start_date": "2024-01-12", "end_date": "2024-01-12"}, headers=headers
    )
    assert response.json()["pagination"]["total"] == 2

    response = client.get("/api/time/entries", params={"user_id": employee_user.id}, headers=auth_headers(manager_user))
    assert response.json()["pagination"]["total"] == 3

    response = client.get("/api/time/entries", params={"user_id": manager_user.id}, headers=headers)
    assert response.status_code == 403


def test_overlap_error_carries_no_write(service_for, db_session, employee_user):
    service = service_for(TimeEntryService, employee_user)
    service.create_manual(date(2024, 1, 12), time(9), time(17))
    with pytest.raises(OverlapConflictError):
        service.create_manual(date(2024, 1, 12), time(16), time(18))
    assert db_session.query(TimeEntry).filter(TimeEntry.user_id == employee_user.id).count() == 1
