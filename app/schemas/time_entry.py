from datetime import date, datetime, time
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.schemas import Pagination


class ManualTimeEntryCreate(BaseModel):
    date: date
    start_time: time
    end_time: time
    break_minutes: int = Field(default=0, ge=0, le=1440)
    project_task: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)


class TimeEntryUpdate(BaseModel):
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    break_minutes: Optional[int] = Field(default=None, ge=0, le=1440)
    project_task: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    change_reason: Optional[str] = Field(default=None, max_length=200)


class TimeEntryDecision(BaseModel):
    decision: Literal["approve", "reject"]
    reason: Optional[str] = Field(default=None, max_length=500)


class TimeEntryResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    clock_in_at: datetime
    clock_out_at: Optional[datetime] = None
    break_minutes: int
    project_task: Optional[str] = None
    notes: Optional[str] = None
    entry_type: str
    approval_status: str
    approver_user_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    edited_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TimeEntryWriteResponse(TimeEntryResponse):
    """Entry after an edit or review; ``warnings`` lists failed follow-up steps."""
    warnings: List[str] = []


class TimeEntryListResponse(BaseModel):
    entries: List[TimeEntryResponse]
    pagination: Pagination


class AuditRecordResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    changed_by: int
    field_name: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditHistoryResponse(BaseModel):
    audit: List[AuditRecordResponse]


class DeleteEntryResponse(BaseModel):
    success: bool = True
    warnings: List[str] = []
