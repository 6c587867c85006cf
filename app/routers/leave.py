from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.core.exceptions import ValidationFailedError
from app.core.schemas import SuccessResponse
from app.dependencies import get_leave_ledger, get_leave_service
from app.schemas.leave import (
    BlackoutPeriodCreate,
    BlackoutPeriodResponse,
    BlackoutPeriodUpdate,
    HolidayBulkCreate,
    HolidayBulkResponse,
    HolidayCreate,
    HolidayResponse,
    LeaveBalanceAdjustment,
    LeaveBalanceAdjustmentResponse,
    LeaveBalancesResponse,
    LeaveDecision,
    LeaveRequestCreate,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    LeaveRequestUpdate,
    LeaveTransitionResponse,
    LeaveTypeCreate,
    LeaveTypeResponse,
    LeaveTypeUpdate,
    TeamCalendarResponse,
)
from app.schemas.time_entry import AuditHistoryResponse
from app.services.approval import TransitionResult
from app.services.leave_ledger import LeaveLedger
from app.services.leave_service import LeaveService

router = APIRouter(prefix="/leave")

STATUS_LIST_PATTERN = "^(pending|approved|denied|cancelled)(,(pending|approved|denied|cancelled))*$"


def _transition_response(result: TransitionResult) -> LeaveTransitionResponse:
    response = LeaveTransitionResponse.model_validate(result.record)
    response.side_effects = result.side_effects
    return response


# ==========================================
# LEAVE TYPES
# ==========================================

@router.get("/types", response_model=List[LeaveTypeResponse])
def list_leave_types(service: LeaveService = Depends(get_leave_service)):
    return service.list_types()


@router.post("/types", response_model=LeaveTypeResponse, status_code=201)
def create_leave_type(payload: LeaveTypeCreate, service: LeaveService = Depends(get_leave_service)):
    return service.create_type(**payload.model_dump())


@router.put("/types/{leave_type_id}", response_model=LeaveTypeResponse)
def update_leave_type(
    leave_type_id: int,
    payload: LeaveTypeUpdate,
    service: LeaveService = Depends(get_leave_service),
):
    return service.update_type(leave_type_id, payload.model_dump(exclude_unset=True))


@router.delete("/types/{leave_type_id}", response_model=SuccessResponse)
def deactivate_leave_type(leave_type_id: int, service: LeaveService = Depends(get_leave_service)):
    """Soft delete: existing requests and balances keep their reference."""
    service.deactivate_type(leave_type_id)
    return {"success": True, "message": "Leave type deactivated"}


# ==========================================
# HOLIDAYS & BLACKOUT PERIODS
# ==========================================

@router.get("/holidays", response_model=List[HolidayResponse])
def list_holidays(year: Optional[int] = None, service: LeaveService = Depends(get_leave_service)):
    return service.list_holidays(year)


@router.post("/holidays", response_model=HolidayResponse, status_code=201)
def create_holiday(payload: HolidayCreate, service: LeaveService = Depends(get_leave_service)):
    return service.create_holiday(**payload.model_dump())


@router.post("/holidays/bulk", response_model=HolidayBulkResponse, status_code=201)
def import_holidays(payload: HolidayBulkCreate, service: LeaveService = Depends(get_leave_service)):
    holidays = service.create_holidays([h.model_dump() for h in payload.holidays])
    return {"holidays": holidays, "count": len(holidays)}


@router.delete("/holidays/{holiday_id}", response_model=SuccessResponse)
def delete_holiday(holiday_id: int, service: LeaveService = Depends(get_leave_service)):
    service.delete_holiday(holiday_id)
    return {"success": True, "message": "Holiday deleted"}


@router.get("/blackout-periods", response_model=List[BlackoutPeriodResponse])
def list_blackout_periods(service: LeaveService = Depends(get_leave_service)):
    return service.list_blackout_periods()


@router.post("/blackout-periods", response_model=BlackoutPeriodResponse, status_code=201)
def create_blackout_period(payload: BlackoutPeriodCreate, service: LeaveService = Depends(get_leave_service)):
    return service.create_blackout_period(**payload.model_dump())


@router.put("/blackout-periods/{period_id}", response_model=BlackoutPeriodResponse)
def update_blackout_period(
    period_id: int,
    payload: BlackoutPeriodUpdate,
    service: LeaveService = Depends(get_leave_service),
):
    return service.update_blackout_period(period_id, payload.model_dump(exclude_unset=True))


@router.delete("/blackout-periods/{period_id}", response_model=SuccessResponse)
def delete_blackout_period(period_id: int, service: LeaveService = Depends(get_leave_service)):
    service.delete_blackout_period(period_id)
    return {"success": True, "message": "Blackout period deleted"}


# ==========================================
# TEAM CALENDAR
# ==========================================

def _id_list(raw: Optional[str], name: str) -> Optional[List[int]]:
    if not raw:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ValidationFailedError(f"{name} must be a comma-separated list of ids")


@router.get("/team-calendar", response_model=TeamCalendarResponse)
def get_team_calendar(
    start_date: date,
    end_date: date,
    employee_ids: Optional[str] = Query(default=None, description="Comma-separated user ids"),
    department_id: Optional[int] = None,
    leave_type_ids: Optional[str] = Query(default=None, description="Comma-separated leave type ids"),
    status: Optional[str] = Query(default=None, pattern=STATUS_LIST_PATTERN),
    include_holidays: bool = True,
    service: LeaveService = Depends(get_leave_service),
):
    """Leave requests and holidays in a date range, shaped as calendar events."""
    return service.team_calendar(
        start_date,
        end_date,
        user_ids=_id_list(employee_ids, "employee_ids"),
        department_id=department_id,
        leave_type_ids=_id_list(leave_type_ids, "leave_type_ids"),
        statuses=status.split(",") if status else None,
        include_holidays=include_holidays,
    )


# ==========================================
# LEAVE REQUESTS
# ==========================================

@router.get("/requests", response_model=LeaveRequestListResponse)
def list_leave_requests(
    user_id: Optional[int] = None,
    leave_type_id: Optional[int] = None,
    status: Optional[str] = Query(default=None, pattern="^(pending|approved|denied|cancelled)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    service: LeaveService = Depends(get_leave_service),
):
    requests, pagination = service.list_requests(
        user_id=user_id,
        leave_type_id=leave_type_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        year=year,
        page=page,
        page_size=page_size,
    )
    return {"requests": requests, "pagination": pagination}


@router.post("/requests", response_model=LeaveRequestResponse, status_code=201)
def create_leave_request(payload: LeaveRequestCreate, service: LeaveService = Depends(get_leave_service)):
    """Submit a leave request. Working days and compliance are checked before it is stored."""
    return service.create_request(**payload.model_dump())


@router.put("/requests/{request_id}", response_model=LeaveTransitionResponse)
def update_leave_request(
    request_id: int,
    payload: LeaveRequestUpdate,
    service: LeaveService = Depends(get_leave_service),
):
    return _transition_response(service.update_request(request_id, payload.model_dump(exclude_unset=True)))


@router.delete("/requests/{request_id}", response_model=LeaveTransitionResponse)
def cancel_leave_request(request_id: int, service: LeaveService = Depends(get_leave_service)):
    return _transition_response(service.cancel_request(request_id))


@router.put("/requests/{request_id}/approve", response_model=LeaveTransitionResponse)
def decide_leave_request(
    request_id: int,
    payload: LeaveDecision,
    service: LeaveService = Depends(get_leave_service),
):
    return _transition_response(service.decide_request(request_id, payload.decision, payload.reason))


@router.get("/requests/{request_id}/audit", response_model=AuditHistoryResponse)
def get_leave_request_audit(request_id: int, service: LeaveService = Depends(get_leave_service)):
    return {"audit": service.get_audit(request_id)}


# ==========================================
# BALANCES
# ==========================================

@router.get("/balances/my-balance", response_model=LeaveBalancesResponse)
def get_my_balances(service: LeaveService = Depends(get_leave_service)):
    employee = service.employee_for(service.actor.id)
    return {"balances": service.ledger.balances_for(employee.id)}


@router.get("/balances/team", response_model=LeaveBalancesResponse)
def get_team_balances(service: LeaveService = Depends(get_leave_service)):
    """Current balances of the caller's direct reports."""
    manager = service.employee_for(service.actor.id)
    return {"balances": service.ledger.team_balances(manager)}


@router.get("/balances/{employee_id}", response_model=LeaveBalancesResponse)
def get_employee_balances(employee_id: int, ledger: LeaveLedger = Depends(get_leave_ledger)):
    return {"balances": ledger.employee_balances(employee_id)}


@router.post("/balances/{employee_id}/adjust", response_model=LeaveBalanceAdjustmentResponse)
def adjust_balance(
    employee_id: int,
    payload: LeaveBalanceAdjustment,
    ledger: LeaveLedger = Depends(get_leave_ledger),
):
    balance = ledger.adjust(
        employee_id,
        payload.leave_type_id,
        payload.adjustment_days,
        notes=payload.notes or payload.reason,
    )
    return {
        "success": True,
        "balance_id": balance.id,
        "balance_days": balance.balance_days,
        "used_ytd": balance.used_ytd,
        "remaining": balance.remaining,
        "adjustment": payload.adjustment_days,
    }
