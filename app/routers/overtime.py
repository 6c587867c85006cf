from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_overtime_service
from app.schemas.overtime import (
    OvertimeBalanceResponse,
    OvertimeCalculationRequest,
    OvertimeRequestCreate,
    OvertimeRequestDecision,
    OvertimeRequestDecisionResponse,
    OvertimeRequestListResponse,
    OvertimeRequestResponse,
    OvertimeRuleCreate,
    OvertimeRuleResponse,
    OvertimeRulesResponse,
)
from app.services.overtime_service import OvertimeService

router = APIRouter(prefix="/overtime")

PERIOD_PATTERN = r"^\d{4}-W\d{2}$"


@router.get("/balance", response_model=OvertimeBalanceResponse)
def get_my_balance(
    period: Optional[str] = Query(default=None, pattern=PERIOD_PATTERN),
    service: OvertimeService = Depends(get_overtime_service),
):
    """Caller's overtime balance for an ISO week (defaults to the current week)."""
    return service.get_balance(period=period)


@router.get("/balance/{user_id}", response_model=OvertimeBalanceResponse)
def get_user_balance(
    user_id: int,
    period: Optional[str] = Query(default=None, pattern=PERIOD_PATTERN),
    service: OvertimeService = Depends(get_overtime_service),
):
    return service.get_balance(user_id=user_id, period=period)


@router.post("/calculate", response_model=OvertimeBalanceResponse)
def calculate_overtime(
    payload: OvertimeCalculationRequest,
    service: OvertimeService = Depends(get_overtime_service),
):
    return service.calculate(payload.user_id, payload.start_date, payload.end_date)


@router.get("/rules", response_model=OvertimeRulesResponse)
def list_rules(service: OvertimeService = Depends(get_overtime_service)):
    return {"rules": service.list_rules()}


@router.post("/rules", response_model=OvertimeRuleResponse, status_code=201)
def create_rule(payload: OvertimeRuleCreate, service: OvertimeService = Depends(get_overtime_service)):
    return service.create_rule(**payload.model_dump())


@router.post("/request", response_model=OvertimeRequestResponse, status_code=201)
def create_overtime_request(
    payload: OvertimeRequestCreate,
    service: OvertimeService = Depends(get_overtime_service),
):
    return service.create_request(payload.start_date, payload.end_date, payload.estimated_hours, payload.reason)


@router.get("/requests", response_model=OvertimeRequestListResponse)
def list_overtime_requests(
    user_id: Optional[int] = None,
    status: Optional[str] = Query(default=None, pattern="^(pending|approved|denied)$"),
    service: OvertimeService = Depends(get_overtime_service),
):
    return {"requests": service.list_requests(user_id=user_id, status=status)}


@router.put("/requests/{request_id}/approve", response_model=OvertimeRequestDecisionResponse)
def decide_overtime_request(
    request_id: int,
    payload: OvertimeRequestDecision,
    service: OvertimeService = Depends(get_overtime_service),
):
    result = service.decide_request(request_id, payload.decision, payload.denial_reason)
    response = OvertimeRequestDecisionResponse.model_validate(result.record)
    response.warnings = result.warnings
    return response
