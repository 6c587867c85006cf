"""
Leave Service Layer.

Architecture:
  Router -> LeaveService -> (ComplianceProcedures, LeaveLedger, AuditService) -> Models

Request lifecycle:
  pending -> approved | denied | cancelled
  approved -> denied | cancelled
  denied -> approved

``days_count`` is fixed from the working-day calculation when a request is
created or edited, so later holiday changes never shift a posted delta.
Ledger postings and audit rows run after the status change is committed and
report through ``TransitionResult.side_effects``.
"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AppException,
    ConflictError,
    DependencyUnavailableError,
    InvalidRangeError,
    NotFoundError,
    PreconditionFailedError,
    ValidationFailedError,
)
from app.core.schemas import Pagination
from app.models.audit_record import AuditEntity, AuditRecord
from app.models.blackout_period import BlackoutPeriod
from app.models.employee import Employee
from app.models.holiday import Holiday
from app.models.leave_request import LeaveRequest, LeaveStatus
from app.models.leave_type import LeaveType
from app.services.approval import LEAVE_REQUEST_MACHINE, TransitionResult, compare_and_set_status
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.compliance import ComplianceProcedures, SqlComplianceProcedures
from app.services.leave_ledger import LeaveLedger
from app.services.permissions import Permission

ACTIVE_STATUSES = (LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value)
AUDITED_FIELDS = ("start_date", "end_date", "days_count", "half_day_start", "half_day_end", "note")
NULLABLE_TYPE_FIELDS = ("minimum_entitlement_days", "color")
NULLABLE_BLACKOUT_FIELDS = ("reason", "department_id", "leave_type_id")


def apply_half_days(working_days: float, start_date: date, end_date: date, half_day_start: bool, half_day_end: bool) -> float:
    """Take half a day off each flagged edge; a single-day request loses at most half a day."""
    if working_days <= 0:
        return 0.0
    if start_date == end_date:
        deduction = 0.5 if (half_day_start or half_day_end) else 0.0
    else:
        deduction = 0.5 * int(half_day_start) + 0.5 * int(half_day_end)
    return max(working_days - deduction, 0.0)


class LeaveService(BaseService):
    def __init__(self, *args, procedures: Optional[ComplianceProcedures] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.procedures = procedures or SqlComplianceProcedures(self.db)
        self.ledger = LeaveLedger(self.db, self.org_id, actor=self.actor, clock=self.clock, permissions=self.permissions)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def employee_for(self, user_id: int) -> Employee:
        employee = (
            self.db.query(Employee)
            .filter(Employee.organization_id == self.org_id, Employee.user_id == user_id)
            .first()
        )
        if not employee:
            raise NotFoundError("Employee not found")
        return employee

    def get_request(self, request_id: int) -> LeaveRequest:
        request = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == request_id, LeaveRequest.organization_id == self.org_id)
            .first()
        )
        if not request:
            raise NotFoundError("Leave request not found")
        return request

    def list_requests(
        self,
        user_id: Optional[int] = None,
        leave_type_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        year: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[LeaveRequest], Pagination]:
        """Own requests, or any requests in the tenant for team-calendar viewers."""
        query = self.db.query(LeaveRequest).filter(LeaveRequest.organization_id == self.org_id)
        if user_id is not None and user_id != self.actor.id:
            self._ensure(Permission.LEAVE_VIEW_TEAM_CALENDAR)
            query = query.filter(LeaveRequest.user_id == user_id)
        elif user_id is None and self._can(Permission.LEAVE_VIEW_TEAM_CALENDAR):
            pass
        else:
            query = query.filter(LeaveRequest.user_id == self.actor.id)

        if leave_type_id:
            query = query.filter(LeaveRequest.leave_type_id == leave_type_id)
        if status:
            query = query.filter(LeaveRequest.status == status)
        if start_date:
            query = query.filter(LeaveRequest.start_date >= start_date)
        if end_date:
            query = query.filter(LeaveRequest.end_date <= end_date)
        if year:
            query = query.filter(LeaveRequest.start_date >= date(year, 1, 1), LeaveRequest.start_date <= date(year, 12, 31))

        total = query.count()
        requests = (
            query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return requests, Pagination.build(page, page_size, total)

    def get_audit(self, request_id: int) -> List[AuditRecord]:
        request = self.get_request(request_id)
        if request.user_id != self.actor.id:
            self._ensure(Permission.LEAVE_VIEW_TEAM_CALENDAR)
        return self._audit().history(AuditEntity.LEAVE_REQUEST, request.id)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def create_request(
        self,
        start_date: date,
        end_date: date,
        leave_type_id: int,
        half_day_start: bool = False,
        half_day_end: bool = False,
        note: Optional[str] = None,
    ) -> LeaveRequest:
        employee = self.employee_for(self.actor.id)
        if end_date < start_date:
            raise InvalidRangeError("End date must be on or after start date")

        days = self.working_days(start_date, end_date, half_day_start, half_day_end)
        self._ensure_no_overlap(start_date, end_date)
        self._ensure_compliant(employee, leave_type_id, start_date, end_date, days)

        leave_type = self.db.query(LeaveType).filter(LeaveType.id == leave_type_id).first()
        request = LeaveRequest(
            organization_id=self.org_id,
            user_id=self.actor.id,
            employee_id=employee.id,
            leave_type_id=leave_type_id,
            leave_type=leave_type.code if leave_type else None,
            start_date=start_date,
            end_date=end_date,
            days_count=days,
            half_day_start=half_day_start,
            half_day_end=half_day_end,
            note=note,
            status=LeaveStatus.PENDING.value,
        )
        self.db.add(request)
        self._commit()
        self.db.refresh(request)
        self._logger.info(f"Leave request {request.id} created by user {self.actor.id} for {days} days")

        self._run_side_effect(
            "audit",
            lambda: {"record_id": self._audit().record(
                AuditEntity.LEAVE_REQUEST, request.id, self.actor.id, "status", None,
                LeaveStatus.PENDING.value, "Request created"
            ).id},
        )
        if leave_type is not None and not leave_type.requires_approval:
            self._approve_on_submit(request)
        return request

    def update_request(self, request_id: int, patch: Dict[str, Any]) -> TransitionResult:
        request = self.get_request(request_id)
        if request.user_id != self.actor.id:
            raise NotFoundError("Leave request not found")
        if request.status != LeaveStatus.PENDING.value:
            raise PreconditionFailedError("Only pending requests can be modified")

        patch = {k: v for k, v in patch.items() if not (k != "note" and v is None)}
        if not patch:
            raise ValidationFailedError("No changes provided")

        proposed = {
            "start_date": patch.get("start_date", request.start_date),
            "end_date": patch.get("end_date", request.end_date),
            "half_day_start": patch.get("half_day_start", request.half_day_start),
            "half_day_end": patch.get("half_day_end", request.half_day_end),
            "note": patch["note"] if "note" in patch else request.note,
            "days_count": request.days_count,
        }
        if proposed["end_date"] < proposed["start_date"]:
            raise InvalidRangeError("End date must be on or after start date")

        span_changed = any(
            proposed[f] != getattr(request, f) for f in ("start_date", "end_date", "half_day_start", "half_day_end")
        )
        if span_changed:
            proposed["days_count"] = self.working_days(
                proposed["start_date"], proposed["end_date"], proposed["half_day_start"], proposed["half_day_end"]
            )
            self._ensure_no_overlap(proposed["start_date"], proposed["end_date"], exclude_id=request.id)
            employee = self.employee_for(self.actor.id)
            self._ensure_compliant(
                employee, request.leave_type_id, proposed["start_date"], proposed["end_date"], proposed["days_count"]
            )

        changes = {
            name: (getattr(request, name), proposed[name])
            for name in AUDITED_FIELDS
            if getattr(request, name) != proposed[name]
        }
        status = request.status
        if not changes:
            return TransitionResult(record=request, previous_status=status, status=status, changed=False)

        for name, (_, new) in changes.items():
            setattr(request, name, new)
        request.updated_at = self.clock.now()
        self._commit()
        self.db.refresh(request)

        audit = self._run_side_effect(
            "audit",
            lambda: {"records": len(self._audit().record_changes(
                AuditEntity.LEAVE_REQUEST, request.id, self.actor.id, changes, "Request modified"
            ))},
        )
        return TransitionResult(record=request, previous_status=status, status=status, changed=True, side_effects=[audit])

    def cancel_request(self, request_id: int, reason: Optional[str] = None) -> TransitionResult:
        request = self.get_request(request_id)
        if request.user_id != self.actor.id:
            raise NotFoundError("Leave request not found")

        previous = request.status
        if previous == LeaveStatus.CANCELLED.value:
            raise ConflictError("Leave request is already cancelled", error_code="ALREADY_CANCELLED")
        if previous == LeaveStatus.DENIED.value:
            raise PreconditionFailedError("Cannot cancel a denied request")
        target = LeaveStatus.CANCELLED.value
        LEAVE_REQUEST_MACHINE.check(previous, target)

        now = self.clock.now()
        compare_and_set_status(
            self.db, LeaveRequest, request.id, previous,
            {"status": target, "cancelled_by": self.actor.id, "cancelled_at": now, "updated_at": now},
        )
        self._commit()
        self.db.refresh(request)
        self._logger.info(f"Leave request {request.id} cancelled by user {self.actor.id}")

        effects = self._post_transition(request, previous, target, reason or "Request cancelled")
        return TransitionResult(record=request, previous_status=previous, status=target, changed=True, side_effects=effects)

    def decide_request(self, request_id: int, decision: str, denial_reason: Optional[str] = None) -> TransitionResult:
        self._ensure(Permission.LEAVE_APPROVE_REQUESTS)
        request = self.get_request(request_id)

        previous = request.status
        if previous == LeaveStatus.CANCELLED.value:
            raise PreconditionFailedError("Cannot approve or deny a cancelled request")
        target = (LeaveStatus.APPROVED if decision == "approve" else LeaveStatus.DENIED).value
        if not LEAVE_REQUEST_MACHINE.check(previous, target):
            return TransitionResult(record=request, previous_status=previous, status=previous, changed=False)
        LEAVE_REQUEST_MACHINE.require_reason(target, denial_reason)

        now = self.clock.now()
        compare_and_set_status(
            self.db, LeaveRequest, request.id, previous,
            {
                "status": target,
                "approver_user_id": self.actor.id,
                "decided_at": now,
                "denial_reason": denial_reason if target == LeaveStatus.DENIED.value else None,
                "updated_at": now,
            },
        )
        self._commit()
        self.db.refresh(request)
        self._logger.info(f"Leave request {request.id} {previous} -> {target} by user {self.actor.id}")

        effects = self._post_transition(request, previous, target, denial_reason)
        return TransitionResult(record=request, previous_status=previous, status=target, changed=True, side_effects=effects)

    # ------------------------------------------------------------------
    # Leave types, holidays, blackout periods
    # ------------------------------------------------------------------
    def list_types(self) -> List[LeaveType]:
        return (
            self.db.query(LeaveType)
            .filter(LeaveType.organization_id == self.org_id, LeaveType.is_active.is_(True))
            .order_by(LeaveType.name)
            .all()
        )

    def create_type(self, **fields) -> LeaveType:
        self._ensure(Permission.LEAVE_MANAGE_TYPES)
        leave_type = LeaveType(organization_id=self.org_id, **fields)
        try:
            with self.db.begin_nested():
                self.db.add(leave_type)
        except IntegrityError:
            raise ConflictError(f"Leave type code '{fields.get('code')}' already exists")
        self._commit()
        self.db.refresh(leave_type)
        return leave_type

    def deactivate_type(self, leave_type_id: int) -> None:
        self._ensure(Permission.LEAVE_MANAGE_TYPES)
        leave_type = self._get_type(leave_type_id)
        leave_type.is_active = False
        self._commit()

    def update_type(self, leave_type_id: int, changes: Dict[str, Any]) -> LeaveType:
        self._ensure(Permission.LEAVE_MANAGE_TYPES)
        leave_type = self._get_type(leave_type_id)
        changes = {k: v for k, v in changes.items() if v is not None or k in NULLABLE_TYPE_FIELDS}
        for name, value in changes.items():
            setattr(leave_type, name, value)
        self._commit()
        self.db.refresh(leave_type)
        return leave_type

    def _get_type(self, leave_type_id: int) -> LeaveType:
        leave_type = (
            self.db.query(LeaveType)
            .filter(LeaveType.id == leave_type_id, LeaveType.organization_id == self.org_id)
            .first()
        )
        if not leave_type:
            raise NotFoundError("Leave type not found")
        return leave_type

    def list_holidays(self, year: Optional[int] = None) -> List[Holiday]:
        query = self.db.query(Holiday).filter(Holiday.organization_id == self.org_id)
        if year:
            query = query.filter(Holiday.date >= date(year, 1, 1), Holiday.date <= date(year, 12, 31))
        return query.order_by(Holiday.date).all()

    def create_holiday(self, **fields) -> Holiday:
        self._ensure(Permission.LEAVE_MANAGE_HOLIDAYS)
        holiday = Holiday(organization_id=self.org_id, **fields)
        try:
            with self.db.begin_nested():
                self.db.add(holiday)
        except IntegrityError:
            raise ConflictError(f"A holiday already exists on {fields.get('date')}")
        self._commit()
        self.db.refresh(holiday)
        return holiday

    def list_blackout_periods(self) -> List[BlackoutPeriod]:
        return (
            self.db.query(BlackoutPeriod)
            .filter(BlackoutPeriod.organization_id == self.org_id, BlackoutPeriod.is_active.is_(True))
            .order_by(BlackoutPeriod.start_date)
            .all()
        )

    def create_blackout_period(self, **fields) -> BlackoutPeriod:
        self._ensure(Permission.LEAVE_MANAGE_HOLIDAYS)
        if fields["end_date"] < fields["start_date"]:
            raise InvalidRangeError("End date must be on or after start date")
        period = BlackoutPeriod(organization_id=self.org_id, **fields)
        self.db.add(period)
        self._commit()
        self.db.refresh(period)
        return period

    def update_blackout_period(self, period_id: int, changes: Dict[str, Any]) -> BlackoutPeriod:
        self._ensure(Permission.LEAVE_MANAGE_HOLIDAYS)
        period = self._get_blackout_period(period_id)
        changes = {k: v for k, v in changes.items() if v is not None or k in NULLABLE_BLACKOUT_FIELDS}
        start_date = changes.get("start_date") or period.start_date
        end_date = changes.get("end_date") or period.end_date
        if end_date < start_date:
            raise InvalidRangeError("End date must be on or after start date")
        for name, value in changes.items():
            setattr(period, name, value)
        self._commit()
        self.db.refresh(period)
        return period

    def delete_blackout_period(self, period_id: int) -> None:
        self._ensure(Permission.LEAVE_MANAGE_HOLIDAYS)
        self.db.delete(self._get_blackout_period(period_id))
        self._commit()

    def create_holidays(self, holidays: List[Dict[str, Any]]) -> List[Holiday]:
        """Import a holiday calendar; one duplicate date rejects the whole batch."""
        self._ensure(Permission.LEAVE_MANAGE_HOLIDAYS)
        rows = [Holiday(organization_id=self.org_id, **fields) for fields in holidays]
        try:
            with self.db.begin_nested():
                self.db.add_all(rows)
        except IntegrityError:
            raise ConflictError("One or more holidays already exist on the given dates")
        self._commit()
        for row in rows:
            self.db.refresh(row)
        self._logger.info(f"Imported {len(rows)} holidays for organization {self.org_id}")
        return rows

    def delete_holiday(self, holiday_id: int) -> None:
        self._ensure(Permission.LEAVE_MANAGE_HOLIDAYS)
        holiday = (
            self.db.query(Holiday)
            .filter(Holiday.id == holiday_id, Holiday.organization_id == self.org_id)
            .first()
        )
        if not holiday:
            raise NotFoundError("Holiday not found")
        self.db.delete(holiday)
        self._commit()

    def _get_blackout_period(self, period_id: int) -> BlackoutPeriod:
        period = (
            self.db.query(BlackoutPeriod)
            .filter(BlackoutPeriod.id == period_id, BlackoutPeriod.organization_id == self.org_id)
            .first()
        )
        if not period:
            raise NotFoundError("Blackout period not found")
        return period

    # ------------------------------------------------------------------
    # Team calendar
    # ------------------------------------------------------------------
    def team_calendar(
        self,
        start_date: date,
        end_date: date,
        user_ids: Optional[List[int]] = None,
        department_id: Optional[int] = None,
        leave_type_ids: Optional[List[int]] = None,
        statuses: Optional[List[str]] = None,
        include_holidays: bool = True,
    ) -> Dict[str, Any]:
        """
        Leave requests and holidays touching [start_date, end_date] as calendar
        events. Without a status filter only pending and approved requests show.
        """
        self._ensure(Permission.LEAVE_VIEW_TEAM_CALENDAR)
        if end_date < start_date:
            raise InvalidRangeError("End date must be on or after start date")

        query = (
            self.db.query(LeaveRequest, Employee, LeaveType)
            .outerjoin(Employee, Employee.id == LeaveRequest.employee_id)
            .outerjoin(LeaveType, LeaveType.id == LeaveRequest.leave_type_id)
            .filter(
                LeaveRequest.organization_id == self.org_id,
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
                LeaveRequest.status.in_(statuses or ACTIVE_STATUSES),
            )
        )
        if user_ids:
            query = query.filter(LeaveRequest.user_id.in_(user_ids))
        if department_id is not None:
            query = query.filter(Employee.department_id == department_id)
        if leave_type_ids:
            query = query.filter(LeaveRequest.leave_type_id.in_(leave_type_ids))

        events = []
        for request, employee, leave_type in query.order_by(LeaveRequest.start_date, LeaveRequest.id):
            employee_name = employee.full_name if employee else None
            type_name = leave_type.name if leave_type else request.leave_type
            events.append({
                "id": f"request-{request.id}",
                "title": f"{employee_name or 'Employee'} - {type_name or 'Leave'}",
                "start": request.start_date,
                "end": request.end_date,
                "type": "leave_request",
                "employee_id": request.user_id,
                "employee_name": employee_name,
                "leave_type": type_name,
                "leave_type_color": leave_type.color if leave_type else None,
                "status": request.status,
                "is_half_day": bool(request.half_day_start or request.half_day_end),
                "notes": request.note,
            })

        holidays = []
        if include_holidays:
            holidays = (
                self.db.query(Holiday)
                .filter(
                    Holiday.organization_id == self.org_id,
                    Holiday.date >= start_date,
                    Holiday.date <= end_date,
                )
                .order_by(Holiday.date)
                .all()
            )
        holiday_events = [
            {
                "id": f"holiday-{h.id}",
                "title": h.name,
                "start": h.date,
                "end": h.date,
                "type": "holiday",
                "is_half_day": h.is_half_day,
            }
            for h in holidays
        ]

        return {
            "events": events + holiday_events,
            "holidays": holidays,
            "summary": {
                "total_requests": len(events),
                "pending_requests": sum(1 for e in events if e["status"] == LeaveStatus.PENDING.value),
                "approved_requests": sum(1 for e in events if e["status"] == LeaveStatus.APPROVED.value),
                "total_holidays": len(holiday_events),
            },
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def working_days(self, start_date: date, end_date: date, half_day_start: bool = False, half_day_end: bool = False) -> float:
        try:
            days = self.procedures.calculate_working_days(self.org_id, start_date, end_date)
        except AppException:
            raise
        except Exception as exc:
            raise DependencyUnavailableError("Failed to calculate working days", status_code=400) from exc
        return apply_half_days(float(days), start_date, end_date, half_day_start, half_day_end)

    def _ensure_no_overlap(self, start_date: date, end_date: date, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.organization_id == self.org_id,
            LeaveRequest.user_id == self.actor.id,
            LeaveRequest.status.in_(ACTIVE_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        if exclude_id is not None:
            query = query.filter(LeaveRequest.id != exclude_id)
        if query.first():
            raise ValidationFailedError(
                "You already have a pending or approved request for these dates",
                error_code="OVERLAPPING_REQUEST",
            )

    def _ensure_compliant(self, employee: Employee, leave_type_id: int, start_date: date, end_date: date, days: float) -> None:
        try:
            result = self.procedures.validate_leave_request_compliance(
                self.org_id, employee.id, leave_type_id, start_date, end_date, days, employee.department_id
            )
        except AppException:
            raise
        except Exception as exc:
            raise DependencyUnavailableError("Failed to validate leave request", status_code=400) from exc

        if not result.valid:
            details = {"blackout_period": result.blackout_period.model_dump(mode="json")} if result.blackout_period else None
            raise ValidationFailedError(
                result.message or "Leave request is not compliant",
                error_code=result.error_code or "VALIDATION_FAILED",
                details=details,
            )

    def _approve_on_submit(self, request: LeaveRequest) -> List:
        previous = LeaveStatus.PENDING.value
        target = LeaveStatus.APPROVED.value
        now = self.clock.now()
        compare_and_set_status(
            self.db, LeaveRequest, request.id, previous,
            {"status": target, "decided_at": now, "updated_at": now},
        )
        self._commit()
        self.db.refresh(request)
        self._logger.info(f"Leave request {request.id} approved on submission (type needs no approval)")
        return self._post_transition(request, previous, target, "Approved automatically")

    def _post_transition(self, request: LeaveRequest, previous: str, target: str, reason: Optional[str]):
        ledger = self._run_side_effect(
            "ledger",
            lambda: self.ledger.post_approval_delta(
                request.employee_id, request.leave_type_id, previous, target, request.days_count
            ),
        )
        audit = self._run_side_effect(
            "audit",
            lambda: {"record_id": self._audit().record(
                AuditEntity.LEAVE_REQUEST, request.id, self.actor.id, "status", previous, target, reason
            ).id},
        )
        return [ledger, audit]

    def _audit(self) -> AuditService:
        return AuditService(self.db, self.org_id, actor=self.actor, clock=self.clock)
