"""
Leave compliance procedures.

The leave workflow asks two questions before it stores a request: how many
working days the range covers, and whether the request is allowed at all.
Both answers come from a procedures object so a deployment can delegate them
to stored procedures; ``SqlComplianceProcedures`` answers them from the
holiday, blackout, leave type and balance tables.

Results are authoritative: the workflow never second-guesses a verdict.
"""
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Literal, Optional

from fastapi import Depends
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import DependencyUnavailableError
from app.database import get_db
from app.models.blackout_period import BlackoutPeriod
from app.models.holiday import Holiday
from app.models.leave_balance import LeaveBalance
from app.models.leave_type import LeaveType

ComplianceErrorCode = Literal[
    "INVALID_LEAVE_TYPE",
    "NO_BALANCE_RECORD",
    "INSUFFICIENT_BALANCE",
    "MINIMUM_ENTITLEMENT_VIOLATION",
    "BLACKOUT_PERIOD_CONFLICT",
]


class BlackoutInfo(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    reason: Optional[str] = None


class ComplianceResult(BaseModel):
    valid: bool
    error_code: Optional[ComplianceErrorCode] = None
    message: Optional[str] = None
    blackout_period: Optional[BlackoutInfo] = None

    @classmethod
    def ok(cls) -> "ComplianceResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, code: ComplianceErrorCode, message: str, blackout: Optional[BlackoutInfo] = None) -> "ComplianceResult":
        return cls(valid=False, error_code=code, message=message, blackout_period=blackout)


class ComplianceProcedures(ABC):
    @abstractmethod
    def calculate_working_days(self, org_id: int, start_date: date, end_date: date) -> float:
        """Working days in the inclusive range."""

    @abstractmethod
    def validate_leave_request_compliance(
        self,
        org_id: int,
        employee_id: int,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        days_requested: float,
        department_id: Optional[int] = None,
    ) -> ComplianceResult:
        """Authoritative verdict on whether the request may be stored."""


class SqlComplianceProcedures(ComplianceProcedures):
    def __init__(self, db: Session):
        self.db = db

    def calculate_working_days(self, org_id: int, start_date: date, end_date: date) -> float:
        """Monday-Friday in [start, end], minus holidays (half-day holidays count 0.5)."""
        try:
            holidays = {
                h.date: h.is_half_day
                for h in self.db.query(Holiday).filter(
                    Holiday.organization_id == org_id,
                    Holiday.date >= start_date,
                    Holiday.date <= end_date,
                )
            }
        except SQLAlchemyError as exc:
            raise DependencyUnavailableError("Failed to calculate working days", status_code=400) from exc

        days = 0.0
        current = start_date
        while current <= end_date:
            if current.weekday() < 5:
                if current not in holidays:
                    days += 1.0
                elif holidays[current]:
                    days += 0.5
            current += timedelta(days=1)
        return days

    def validate_leave_request_compliance(
        self,
        org_id: int,
        employee_id: int,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        days_requested: float,
        department_id: Optional[int] = None,
    ) -> ComplianceResult:
        try:
            return self._validate(org_id, employee_id, leave_type_id, start_date, end_date, days_requested, department_id)
        except SQLAlchemyError as exc:
            raise DependencyUnavailableError("Failed to validate leave request", status_code=400) from exc

    def _validate(self, org_id, employee_id, leave_type_id, start_date, end_date, days_requested, department_id):
        leave_type = (
            self.db.query(LeaveType)
            .filter(
                LeaveType.id == leave_type_id,
                LeaveType.organization_id == org_id,
                LeaveType.is_active.is_(True),
            )
            .first()
        )
        if not leave_type:
            return ComplianceResult.fail("INVALID_LEAVE_TYPE", "Leave type does not exist or is inactive")

        blackout_query = self.db.query(BlackoutPeriod).filter(
            BlackoutPeriod.organization_id == org_id,
            BlackoutPeriod.is_active.is_(True),
            BlackoutPeriod.start_date <= end_date,
            BlackoutPeriod.end_date >= start_date,
            or_(BlackoutPeriod.leave_type_id.is_(None), BlackoutPeriod.leave_type_id == leave_type_id),
        )
        if department_id is not None:
            blackout_query = blackout_query.filter(
                or_(BlackoutPeriod.department_id.is_(None), BlackoutPeriod.department_id == department_id)
            )
        else:
            blackout_query = blackout_query.filter(BlackoutPeriod.department_id.is_(None))
        blackout = blackout_query.order_by(BlackoutPeriod.start_date).first()
        if blackout:
            return ComplianceResult.fail(
                "BLACKOUT_PERIOD_CONFLICT",
                f"Requested dates fall within blackout period '{blackout.name}'",
                BlackoutInfo(
                    id=blackout.id,
                    name=blackout.name,
                    start_date=blackout.start_date,
                    end_date=blackout.end_date,
                    reason=blackout.reason,
                ),
            )

        balance = (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.organization_id == org_id,
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.period_start <= start_date,
                LeaveBalance.period_end >= start_date,
            )
            .order_by(LeaveBalance.period_start.desc())
            .first()
        )
        if not balance:
            if leave_type.allow_negative_balance:
                return ComplianceResult.ok()
            return ComplianceResult.fail("NO_BALANCE_RECORD", "No leave balance found for this leave type")

        available = balance.remaining
        if days_requested > available and not leave_type.allow_negative_balance:
            return ComplianceResult.fail(
                "INSUFFICIENT_BALANCE",
                f"Insufficient balance: {available} days available, {days_requested} requested",
            )

        if leave_type.enforce_minimum_entitlement and leave_type.minimum_entitlement_days is not None:
            if available - days_requested < leave_type.minimum_entitlement_days:
                return ComplianceResult.fail(
                    "MINIMUM_ENTITLEMENT_VIOLATION",
                    f"Request would leave less than the minimum entitlement of "
                    f"{leave_type.minimum_entitlement_days} days",
                )

        return ComplianceResult.ok()


def get_compliance_procedures(db: Session = Depends(get_db)) -> ComplianceProcedures:
    return SqlComplianceProcedures(db)
