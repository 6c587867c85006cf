# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    organization, user, department, employee,
    time_entry, audit_record,
    leave_type, leave_request, leave_balance, holiday, blackout_period,
    overtime_rule, overtime_balance, overtime_request,
)

# Explicit class exports for cleaner imports
from .organization import Organization
from .user import User, UserRole
from .department import Department
from .employee import Employee
from .time_entry import TimeEntry, EntryType, ApprovalStatus
from .audit_record import AuditRecord, AuditEntity
from .leave_type import LeaveType
from .leave_request import LeaveRequest, LeaveStatus
from .leave_balance import LeaveBalance
from .holiday import Holiday
from .blackout_period import BlackoutPeriod
from .overtime_rule import OvertimeRule
from .overtime_balance import OvertimeBalance
from .overtime_request import OvertimeRequest, OvertimeRequestStatus

__all__ = [
    "Organization",
    "User",
    "UserRole",
    "Department",
    "Employee",
    "TimeEntry",
    "EntryType",
    "ApprovalStatus",
    "AuditRecord",
    "AuditEntity",
    "LeaveType",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveBalance",
    "Holiday",
    "BlackoutPeriod",
    "OvertimeRule",
    "OvertimeBalance",
    "OvertimeRequest",
    "OvertimeRequestStatus",
]
