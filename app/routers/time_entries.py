from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.schemas.summary import TimeSummaryResponse
from app.schemas.time_entry import (
    AuditHistoryResponse,
    DeleteEntryResponse,
    ManualTimeEntryCreate,
    TimeEntryDecision,
    TimeEntryListResponse,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimeEntryWriteResponse,
)
from app.dependencies import get_summary_service, get_time_entry_service
from app.services.approval import TransitionResult
from app.services.summary_service import TimeSummaryService
from app.services.time_entry_service import TimeEntryService

router = APIRouter(prefix="/time")


def _write_response(result: TransitionResult) -> TimeEntryWriteResponse:
    response = TimeEntryWriteResponse.model_validate(result.record)
    response.warnings = result.warnings
    return response


@router.get("/summary", response_model=TimeSummaryResponse)
def get_summary(service: TimeSummaryService = Depends(get_summary_service)):
    """Hours worked this week, the open entry and current leave balances."""
    return service.summary()


@router.post("/clock-in", response_model=TimeEntryResponse, status_code=201)
def clock_in(service: TimeEntryService = Depends(get_time_entry_service)):
    return service.clock_in()


@router.post("/clock-out", response_model=TimeEntryResponse)
def clock_out(service: TimeEntryService = Depends(get_time_entry_service)):
    return service.clock_out()


@router.post("/entries", response_model=TimeEntryResponse, status_code=201)
def create_manual_entry(
    payload: ManualTimeEntryCreate,
    service: TimeEntryService = Depends(get_time_entry_service),
):
    """Record a manual entry. Entries for days that have already started wait for approval."""
    return service.create_manual(
        entry_date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        break_minutes=payload.break_minutes,
        project_task=payload.project_task,
        notes=payload.notes,
    )


@router.get("/entries", response_model=TimeEntryListResponse)
def list_entries(
    user_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = Query(default=None, pattern="^(pending|approved|rejected)$"),
    entry_type: Optional[str] = Query(default=None, pattern="^(clock|manual)$"),
    project_task: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    entries, pagination = service.list_entries(
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        entry_type=entry_type,
        project_task=project_task,
        page=page,
        page_size=page_size,
    )
    return {"entries": entries, "pagination": pagination}


@router.get("/entries/pending", response_model=TimeEntryListResponse)
def list_pending_entries(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    service: TimeEntryService = Depends(get_time_entry_service),
):
    entries, pagination = service.list_pending(page=page, page_size=page_size)
    return {"entries": entries, "pagination": pagination}


@router.put("/entries/{entry_id}", response_model=TimeEntryWriteResponse)
def update_entry(
    entry_id: int,
    payload: TimeEntryUpdate,
    service: TimeEntryService = Depends(get_time_entry_service),
):
    patch = payload.model_dump(exclude_unset=True)
    reason = patch.pop("change_reason", None)
    return _write_response(service.update_entry(entry_id, patch, reason))


@router.delete("/entries/{entry_id}", response_model=DeleteEntryResponse)
def delete_entry(entry_id: int, service: TimeEntryService = Depends(get_time_entry_service)):
    result = service.delete_entry(entry_id)
    return {"success": True, "warnings": result.warnings}


@router.put("/entries/{entry_id}/approve", response_model=TimeEntryWriteResponse)
def review_entry(
    entry_id: int,
    payload: TimeEntryDecision,
    service: TimeEntryService = Depends(get_time_entry_service),
):
    return _write_response(service.review_entry(entry_id, payload.decision, payload.reason))


@router.get("/entries/{entry_id}/audit", response_model=AuditHistoryResponse)
def get_entry_audit(entry_id: int, service: TimeEntryService = Depends(get_time_entry_service)):
    return {"audit": service.get_audit(entry_id)}
