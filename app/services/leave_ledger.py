"""
Leave Balance Ledger.

``used_ytd`` moves only through approval transitions (``post_approval_delta``)
or an administrative ``adjust``; ``balance_days`` is never touched by the
approval path. The "active" row for a date is the one whose period contains
it, most recent period first.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import case

from app.core.exceptions import NotFoundError, ValidationFailedError
from app.core.timeutils import local_date
from app.models.employee import Employee
from app.models.leave_balance import LeaveBalance
from app.models.leave_request import LeaveStatus
from app.models.leave_type import LeaveType
from app.services.base import BaseService
from app.services.permissions import Permission

APPROVED = LeaveStatus.APPROVED.value


def compute_approval_delta(old_status: Optional[str], new_status: str, days_count: float) -> float:
    """+days entering approved, -days leaving approved, 0 otherwise."""
    if new_status == APPROVED and old_status != APPROVED:
        return days_count
    if old_status == APPROVED and new_status != APPROVED:
        return -days_count
    return 0.0


class LeaveLedger(BaseService):
    def today(self) -> date:
        return local_date(self.clock.now())

    def active_balance(self, employee_id: int, leave_type_id: int, on: Optional[date] = None) -> Optional[LeaveBalance]:
        on = on or self.today()
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.organization_id == self.org_id,
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.period_start <= on,
                LeaveBalance.period_end >= on,
            )
            .order_by(LeaveBalance.period_start.desc(), LeaveBalance.id.desc())
            .first()
        )

    def post_approval_delta(
        self,
        employee_id: Optional[int],
        leave_type_id: Optional[int],
        old_status: Optional[str],
        new_status: str,
        days_count: float,
    ) -> Dict[str, Any]:
        """
        Apply the ledger effect of a status change as a single UPDATE.
        A missing employee or balance row skips the posting; the caller's
        transition stands either way.
        """
        delta = compute_approval_delta(old_status, new_status, days_count or 0.0)
        if delta == 0:
            return {"skipped": True, "delta": 0.0}
        if employee_id is None or leave_type_id is None:
            self._logger.warning(f"Ledger delta {delta} skipped: request has no employee or leave type")
            return {"skipped": True, "delta": delta, "reason": "missing employee or leave type"}

        balance = self.active_balance(employee_id, leave_type_id)
        if not balance:
            self._logger.warning(
                f"Ledger delta {delta} skipped: no active balance for employee {employee_id}, "
                f"leave type {leave_type_id}"
            )
            return {"skipped": True, "delta": delta, "reason": "no active balance"}

        new_used = LeaveBalance.used_ytd + delta
        (
            self.db.query(LeaveBalance)
            .filter(LeaveBalance.id == balance.id)
            .update(
                {"used_ytd": case((new_used < 0, 0.0), else_=new_used), "updated_at": self.clock.now()},
                synchronize_session=False,
            )
        )
        self.db.expire(balance)
        self._logger.info(f"Ledger: balance {balance.id} used_ytd {delta:+}")
        return {"balance_id": balance.id, "delta": delta}

    def adjust(
        self,
        employee_id: int,
        leave_type_id: int,
        delta_days: float,
        notes: Optional[str] = None,
        on: Optional[date] = None,
    ) -> LeaveBalance:
        """
        Administrative absolute add to ``used_ytd`` of the active row.
        Without an active row a calendar-year row is created with
        ``balance_days = delta_days`` and nothing used.
        """
        self._ensure(Permission.LEAVE_MANAGE_BALANCES)
        self._get_employee(employee_id)
        leave_type = (
            self.db.query(LeaveType)
            .filter(LeaveType.id == leave_type_id, LeaveType.organization_id == self.org_id)
            .first()
        )
        if not leave_type:
            raise ValidationFailedError("Invalid leave type")
        if delta_days == 0:
            raise ValidationFailedError("Adjustment must be non-zero")

        on = on or self.today()
        now = self.clock.now()
        balance = self.active_balance(employee_id, leave_type_id, on)
        if balance:
            (
                self.db.query(LeaveBalance)
                .filter(LeaveBalance.id == balance.id)
                .update(
                    {"used_ytd": LeaveBalance.used_ytd + delta_days, "updated_at": now},
                    synchronize_session=False,
                )
            )
            if notes:
                balance.notes = notes
        else:
            balance = LeaveBalance(
                organization_id=self.org_id,
                employee_id=employee_id,
                leave_type_id=leave_type_id,
                period_start=date(on.year, 1, 1),
                period_end=date(on.year, 12, 31),
                balance_days=delta_days,
                used_ytd=0.0,
                notes=notes,
                updated_at=now,
            )
            self.db.add(balance)

        self._commit()
        self.db.refresh(balance)
        self._logger.info(
            f"Leave balance {balance.id} adjusted by {delta_days} for employee {employee_id} by user {self.actor.id}"
        )
        return balance

    def balances_for(self, employee_id: int, on: Optional[date] = None) -> List[LeaveBalance]:
        on = on or self.today()
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.organization_id == self.org_id,
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.period_start <= on,
                LeaveBalance.period_end >= on,
            )
            .order_by(LeaveBalance.leave_type_id, LeaveBalance.period_start.desc())
            .all()
        )

    def employee_balances(self, employee_id: int) -> List[LeaveBalance]:
        self._ensure(Permission.LEAVE_MANAGE_BALANCES)
        self._get_employee(employee_id)
        return self.balances_for(employee_id)

    def team_balances(self, manager: Employee) -> List[LeaveBalance]:
        """Current balances of the manager's direct reports."""
        self._ensure(Permission.LEAVE_VIEW_TEAM_CALENDAR)
        on = self.today()
        return (
            self.db.query(LeaveBalance)
            .join(Employee, Employee.id == LeaveBalance.employee_id)
            .filter(
                LeaveBalance.organization_id == self.org_id,
                Employee.manager_id == manager.id,
                Employee.is_active.is_(True),
                LeaveBalance.period_start <= on,
                LeaveBalance.period_end >= on,
            )
            .order_by(LeaveBalance.employee_id, LeaveBalance.leave_type_id)
            .all()
        )

    def _get_employee(self, employee_id: int) -> Employee:
        employee = (
            self.db.query(Employee)
            .filter(Employee.id == employee_id, Employee.organization_id == self.org_id)
            .first()
        )
        if not employee:
            raise NotFoundError("Employee not found")
        return employee
