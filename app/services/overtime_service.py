"""
Overtime Calculator and overtime requests.

Hours are split per calendar day against the daily threshold first, then the
weekly threshold moves any remaining excess from regular to overtime. The
split itself is a pure function over {day: net hours}; the service only loads
the rule and the approved entries and persists the result into the subject's
OvertimeBalance for the ISO week of the period start.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.exceptions import InvalidRangeError, NoOvertimeRuleError, NotFoundError, ValidationFailedError
from app.core.timeutils import iso_period_key, local_date, net_minutes, round_hours
from app.models.audit_record import AuditEntity
from app.models.overtime_balance import OvertimeBalance
from app.models.overtime_request import OvertimeRequest, OvertimeRequestStatus
from app.models.overtime_rule import OvertimeRule
from app.models.time_entry import ApprovalStatus, TimeEntry
from app.services.approval import OVERTIME_REQUEST_MACHINE, TransitionResult, compare_and_set_status
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.permissions import Permission


@dataclass(frozen=True)
class OvertimeSplit:
    regular_hours: float
    overtime_hours: float


def partition_overtime(
    daily_hours: Mapping[date, float],
    daily_threshold: float,
    weekly_threshold: float,
) -> OvertimeSplit:
    regular = 0.0
    overtime = 0.0
    for hours in daily_hours.values():
        if hours > daily_threshold:
            overtime += hours - daily_threshold
            regular += daily_threshold
        else:
            regular += hours

    excess = regular + overtime - weekly_threshold
    if excess > 0:
        moved = min(excess, regular)
        regular -= moved
        overtime += moved

    return OvertimeSplit(regular_hours=round_hours(regular), overtime_hours=round_hours(overtime))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OvertimeService(BaseService):
    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------
    def default_rule(self) -> OvertimeRule:
        rule = (
            self.db.query(OvertimeRule)
            .filter(OvertimeRule.organization_id == self.org_id, OvertimeRule.is_default.is_(True))
            .first()
        )
        if not rule:
            raise NoOvertimeRuleError()
        return rule

    def list_rules(self) -> List[OvertimeRule]:
        self._ensure(Permission.OVERTIME_VIEW)
        return (
            self.db.query(OvertimeRule)
            .filter(OvertimeRule.organization_id == self.org_id)
            .order_by(OvertimeRule.is_default.desc(), OvertimeRule.name)
            .all()
        )

    def create_rule(self, **fields) -> OvertimeRule:
        """Create a rule; a new default replaces the previous one."""
        self._ensure(Permission.OVERTIME_MANAGE_RULES)
        if fields.get("is_default"):
            (
                self.db.query(OvertimeRule)
                .filter(OvertimeRule.organization_id == self.org_id, OvertimeRule.is_default.is_(True))
                .update({"is_default": False}, synchronize_session=False)
            )
        rule = OvertimeRule(organization_id=self.org_id, **fields)
        self.db.add(rule)
        self._commit()
        self.db.refresh(rule)
        return rule

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------
    def daily_hours(self, user_id: int, period_start: datetime, period_end: datetime) -> Dict[date, float]:
        """Net hours of approved, closed entries keyed by clock-in day."""
        entries = (
            self.db.query(TimeEntry)
            .filter(
                TimeEntry.organization_id == self.org_id,
                TimeEntry.user_id == user_id,
                TimeEntry.approval_status == ApprovalStatus.APPROVED.value,
                TimeEntry.clock_out_at.isnot(None),
                TimeEntry.clock_in_at >= period_start,
                TimeEntry.clock_in_at < period_end,
            )
            .all()
        )
        totals: Dict[date, float] = defaultdict(float)
        for entry in entries:
            minutes = net_minutes(entry.clock_in_at, entry.clock_out_at, entry.break_minutes)
            totals[local_date(entry.clock_in_at)] += minutes / 60.0
        return dict(totals)

    def calculate(self, user_id: int, period_start: datetime, period_end: datetime) -> OvertimeBalance:
        self._ensure(Permission.OVERTIME_APPROVE)
        period_start = _as_utc(period_start)
        period_end = _as_utc(period_end)
        if period_end <= period_start:
            raise InvalidRangeError("Period end must be after period start")

        rule = self.default_rule()
        split = partition_overtime(
            self.daily_hours(user_id, period_start, period_end),
            rule.daily_threshold,
            rule.weekly_threshold,
        )

        balance = self.get_or_create_balance(user_id, iso_period_key(local_date(period_start)))
        balance.regular_hours = split.regular_hours
        balance.overtime_hours = split.overtime_hours
        balance.updated_at = self.clock.now()
        self._commit()
        self.db.refresh(balance)
        self._logger.info(
            f"Overtime for user {user_id} in {balance.period}: "
            f"{split.regular_hours} regular / {split.overtime_hours} overtime"
        )
        return balance

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------
    def get_or_create_balance(self, user_id: int, period: str) -> OvertimeBalance:
        balance = self._find_balance(user_id, period)
        if balance:
            return balance

        balance = OvertimeBalance(
            organization_id=self.org_id,
            user_id=user_id,
            period=period,
            regular_hours=0.0,
            overtime_hours=0.0,
            overtime_multiplier=settings.default_overtime_multiplier,
            carry_over_hours=0.0,
        )
        try:
            with self.db.begin_nested():
                self.db.add(balance)
        except IntegrityError:
            # Created concurrently; use the winner's row
            balance = self._find_balance(user_id, period)
        self._commit()
        return balance

    def get_balance(self, user_id: Optional[int] = None, period: Optional[str] = None) -> OvertimeBalance:
        target_user = user_id or self.actor.id
        if target_user == self.actor.id:
            self._ensure(Permission.OVERTIME_VIEW)
        else:
            self._ensure(Permission.TIME_VIEW_TEAM)
        period = period or iso_period_key(local_date(self.clock.now()))
        balance = self.get_or_create_balance(target_user, period)
        self.db.refresh(balance)
        return balance

    def _find_balance(self, user_id: int, period: str) -> Optional[OvertimeBalance]:
        return (
            self.db.query(OvertimeBalance)
            .filter(
                OvertimeBalance.organization_id == self.org_id,
                OvertimeBalance.user_id == user_id,
                OvertimeBalance.period == period,
            )
            .first()
        )

    # ------------------------------------------------------------------
    # Overtime requests
    # ------------------------------------------------------------------
    def create_request(self, start_date: date, end_date: date, estimated_hours: float, reason: str) -> OvertimeRequest:
        if end_date < start_date:
            raise InvalidRangeError("End date must be on or after start date")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailedError("A reason is required for an overtime request")
        request = OvertimeRequest(
            organization_id=self.org_id,
            user_id=self.actor.id,
            start_date=start_date,
            end_date=end_date,
            estimated_hours=estimated_hours,
            reason=reason,
            status=OvertimeRequestStatus.PENDING.value,
        )
        self.db.add(request)
        self._commit()
        self.db.refresh(request)
        return request

    def list_requests(self, user_id: Optional[int] = None, status: Optional[str] = None) -> List[OvertimeRequest]:
        target_user = user_id or self.actor.id
        if target_user != self.actor.id:
            self._ensure(Permission.TIME_VIEW_TEAM)
        query = self.db.query(OvertimeRequest).filter(
            OvertimeRequest.organization_id == self.org_id,
            OvertimeRequest.user_id == target_user,
        )
        if status:
            query = query.filter(OvertimeRequest.status == status)
        return query.order_by(OvertimeRequest.created_at.desc(), OvertimeRequest.id.desc()).all()

    def decide_request(self, request_id: int, decision: str, denial_reason: Optional[str] = None) -> TransitionResult:
        self._ensure(Permission.TIME_APPROVE)
        request = (
            self.db.query(OvertimeRequest)
            .filter(OvertimeRequest.id == request_id, OvertimeRequest.organization_id == self.org_id)
            .first()
        )
        if not request:
            raise NotFoundError("Overtime request not found")

        previous = request.status
        target = (OvertimeRequestStatus.APPROVED if decision == "approve" else OvertimeRequestStatus.DENIED).value
        OVERTIME_REQUEST_MACHINE.require_reason(target, denial_reason)
        OVERTIME_REQUEST_MACHINE.check(previous, target)

        compare_and_set_status(
            self.db, OvertimeRequest, request.id, previous,
            {
                "status": target,
                "approver_user_id": self.actor.id,
                "decided_at": self.clock.now(),
                "denial_reason": denial_reason if target == OvertimeRequestStatus.DENIED.value else None,
            },
        )
        self._commit()
        self.db.refresh(request)

        audit = self._run_side_effect(
            "audit",
            lambda: {"record_id": AuditService(self.db, self.org_id, clock=self.clock).record(
                AuditEntity.OVERTIME_REQUEST, request.id, self.actor.id, "status", previous, target, denial_reason
            ).id},
        )
        return TransitionResult(record=request, previous_status=previous, status=target, changed=True, side_effects=[audit])
