from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Literal, Optional

from app.core.schemas import Pagination, SideEffectOutcome


class LeaveTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Z_]+$")
    requires_approval: bool = True
    allow_negative_balance: bool = False
    minimum_entitlement_days: Optional[float] = Field(default=None, ge=0)
    enforce_minimum_entitlement: bool = False
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class LeaveTypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    requires_approval: Optional[bool] = None
    allow_negative_balance: Optional[bool] = None
    minimum_entitlement_days: Optional[float] = Field(default=None, ge=0)
    enforce_minimum_entitlement: Optional[bool] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class LeaveTypeResponse(LeaveTypeCreate):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestCreate(BaseModel):
    start_date: date
    end_date: date
    leave_type_id: int
    half_day_start: bool = False
    half_day_end: bool = False
    note: Optional[str] = Field(default=None, max_length=500)


class LeaveRequestUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    half_day_start: Optional[bool] = None
    half_day_end: Optional[bool] = None
    note: Optional[str] = Field(default=None, max_length=500)


class LeaveDecision(BaseModel):
    decision: Literal["approve", "deny"]
    reason: Optional[str] = Field(default=None, max_length=500)


class LeaveRequestResponse(BaseModel):
    id: int
    user_id: int
    employee_id: Optional[int] = None
    leave_type_id: Optional[int] = None
    leave_type: Optional[str] = None
    start_date: date
    end_date: date
    days_count: float
    half_day_start: bool
    half_day_end: bool
    note: Optional[str] = None
    status: str
    approver_user_id: Optional[int] = None
    decided_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveTransitionResponse(LeaveRequestResponse):
    """Request after a status change, with the outcome of the ledger and audit steps."""
    side_effects: List[SideEffectOutcome] = []


class LeaveRequestListResponse(BaseModel):
    requests: List[LeaveRequestResponse]
    pagination: Pagination


class LeaveBalanceResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    period_start: date
    period_end: date
    balance_days: float
    used_ytd: float
    remaining: float
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveBalancesResponse(BaseModel):
    balances: List[LeaveBalanceResponse]


class LeaveBalanceAdjustment(BaseModel):
    leave_type_id: int
    adjustment_days: float
    reason: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=500)


class LeaveBalanceAdjustmentResponse(BaseModel):
    success: bool = True
    balance_id: int
    balance_days: float
    used_ytd: float
    remaining: float
    adjustment: float


class HolidayCreate(BaseModel):
    date: date
    name: str = Field(..., min_length=1, max_length=100)
    is_half_day: bool = False


class HolidayResponse(HolidayCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class BlackoutPeriodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    reason: Optional[str] = Field(default=None, max_length=500)
    department_id: Optional[int] = None
    leave_type_id: Optional[int] = None


class BlackoutPeriodResponse(BlackoutPeriodCreate):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class HolidayBulkCreate(BaseModel):
    holidays: List[HolidayCreate] = Field(..., min_length=1, max_length=366)


class HolidayBulkResponse(BaseModel):
    holidays: List[HolidayResponse]
    count: int


class BlackoutPeriodUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(default=None, max_length=500)
    department_id: Optional[int] = None
    leave_type_id: Optional[int] = None
    is_active: Optional[bool] = None


class TeamCalendarEvent(BaseModel):
    id: str
    title: str
    start: date
    end: date
    type: Literal["leave_request", "holiday"]
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None
    leave_type: Optional[str] = None
    leave_type_color: Optional[str] = None
    status: Optional[str] = None
    is_half_day: bool = False
    notes: Optional[str] = None


class TeamCalendarSummary(BaseModel):
    total_requests: int
    pending_requests: int
    approved_requests: int
    total_holidays: int


class TeamCalendarResponse(BaseModel):
    events: List[TeamCalendarEvent]
    holidays: List[HolidayResponse]
    summary: TeamCalendarSummary
