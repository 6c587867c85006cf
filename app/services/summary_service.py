"""Read-only time summary for the dashboard of a single user."""
from typing import Any, Dict

from app.core.config import settings
from app.core.timeutils import end_of_week_utc, net_minutes, round_hours, start_of_week_utc
from app.models.employee import Employee
from app.models.time_entry import ApprovalStatus, TimeEntry
from app.services.base import BaseService
from app.services.leave_ledger import LeaveLedger
from app.services.time_entry_service import TimeEntryService


class TimeSummaryService(BaseService):
    def hours_this_week(self, user_id: int) -> float:
        """Net hours of closed, non-rejected entries that started this week (Monday 00:00 UTC)."""
        now = self.clock.now()
        entries = (
            self.db.query(TimeEntry)
            .filter(
                TimeEntry.organization_id == self.org_id,
                TimeEntry.user_id == user_id,
                TimeEntry.approval_status != ApprovalStatus.REJECTED.value,
                TimeEntry.clock_out_at.isnot(None),
                TimeEntry.clock_in_at >= start_of_week_utc(now),
                TimeEntry.clock_in_at < end_of_week_utc(now),
            )
            .all()
        )
        minutes = sum(net_minutes(e.clock_in_at, e.clock_out_at, e.break_minutes) for e in entries)
        return round_hours(minutes / 60.0)

    def summary(self) -> Dict[str, Any]:
        user_id = self.actor.id
        entries = TimeEntryService(self.db, self.org_id, actor=self.actor, clock=self.clock)

        employee = (
            self.db.query(Employee)
            .filter(Employee.organization_id == self.org_id, Employee.user_id == user_id)
            .first()
        )
        balances = []
        if employee:
            ledger = LeaveLedger(self.db, self.org_id, actor=self.actor, clock=self.clock)
            balances = ledger.balances_for(employee.id)

        return {
            "hours_this_week": self.hours_this_week(user_id),
            "target_hours": settings.target_weekly_hours,
            "active_entry": entries.active_entry(user_id),
            "leave_balances": balances,
        }
