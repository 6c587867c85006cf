"""
Service providers for the routers.

Each provider wires a request-scoped service to the session, the caller, the
caller's tenant, the clock and the permission resolver, so tests can swap any
of them through ``app.dependency_overrides``.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.clock import Clock, get_clock
from app.database import get_db
from app.models.user import User
from app.routers.auth_deps import get_current_org, get_current_user
from app.services.compliance import ComplianceProcedures, get_compliance_procedures
from app.services.leave_ledger import LeaveLedger
from app.services.leave_service import LeaveService
from app.services.overtime_service import OvertimeService
from app.services.permissions import PermissionResolver, get_permission_resolver
from app.services.summary_service import TimeSummaryService
from app.services.time_entry_service import TimeEntryService


def get_time_entry_service(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    org_id: int = Depends(get_current_org),
    clock: Clock = Depends(get_clock),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> TimeEntryService:
    return TimeEntryService(db, org_id, actor=user, clock=clock, permissions=resolver)


def get_overtime_service(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    org_id: int = Depends(get_current_org),
    clock: Clock = Depends(get_clock),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> OvertimeService:
    return OvertimeService(db, org_id, actor=user, clock=clock, permissions=resolver)


def get_leave_service(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    org_id: int = Depends(get_current_org),
    clock: Clock = Depends(get_clock),
    resolver: PermissionResolver = Depends(get_permission_resolver),
    procedures: ComplianceProcedures = Depends(get_compliance_procedures),
) -> LeaveService:
    return LeaveService(db, org_id, actor=user, clock=clock, permissions=resolver, procedures=procedures)


def get_leave_ledger(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    org_id: int = Depends(get_current_org),
    clock: Clock = Depends(get_clock),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> LeaveLedger:
    return LeaveLedger(db, org_id, actor=user, clock=clock, permissions=resolver)


def get_summary_service(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    org_id: int = Depends(get_current_org),
    clock: Clock = Depends(get_clock),
) -> TimeSummaryService:
    return TimeSummaryService(db, org_id, actor=user, clock=clock)
