from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OvertimeCalculationRequest(BaseModel):
    user_id: int
    start_date: datetime
    end_date: datetime


class OvertimeBalanceResponse(BaseModel):
    id: Optional[int] = None
    user_id: int
    period: str
    regular_hours: float
    overtime_hours: float
    overtime_multiplier: float
    carry_over_hours: float

    model_config = ConfigDict(from_attributes=True)


class OvertimeRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    daily_threshold: float = Field(default=8.0, gt=0, le=24)
    weekly_threshold: float = Field(default=40.0, gt=0, le=168)
    daily_multiplier: float = Field(default=1.5, ge=1)
    weekly_multiplier: float = Field(default=1.5, ge=1)
    is_default: bool = False


class OvertimeRuleResponse(OvertimeRuleCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class OvertimeRulesResponse(BaseModel):
    rules: List[OvertimeRuleResponse]


class OvertimeRequestCreate(BaseModel):
    start_date: date
    end_date: date
    estimated_hours: float = Field(..., gt=0, le=168)
    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Reason must not be blank")
        return value


class OvertimeRequestDecision(BaseModel):
    decision: Literal["approve", "deny"]
    denial_reason: Optional[str] = Field(default=None, max_length=500)


class OvertimeRequestResponse(BaseModel):
    id: int
    user_id: int
    start_date: date
    end_date: date
    estimated_hours: float
    reason: str
    status: str
    approver_user_id: Optional[int] = None
    decided_at: Optional[datetime] = None
    denial_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OvertimeRequestDecisionResponse(OvertimeRequestResponse):
    warnings: List[str] = []


class OvertimeRequestListResponse(BaseModel):
    requests: List[OvertimeRequestResponse]
