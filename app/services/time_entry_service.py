"""
Time Entry Store.

Clock-in/clock-out, manual entries, edits, soft deletion and review of time
entries, with overlap validation against the subject's non-rejected entries.

Failure modes:
- reversed or empty range -> InvalidRangeError
- overlapping entry -> OverlapConflictError
- second open entry -> AlreadyClockedInError (also enforced by a partial unique index)
- review of a non-pending entry -> PreconditionFailedError
"""
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AlreadyClockedInError,
    InvalidRangeError,
    NoActiveEntryError,
    NotFoundError,
    OverlapConflictError,
    PreconditionFailedError,
    ValidationFailedError,
)
from app.core.schemas import Pagination
from app.core.timeutils import combine_local, local_date
from app.models.audit_record import AuditEntity, AuditRecord
from app.models.time_entry import ApprovalStatus, EntryType, TimeEntry
from app.services.approval import TIME_ENTRY_MACHINE, TransitionResult, compare_and_set_status
from app.services.audit import AuditService
from app.services.base import BaseService
from app.services.permissions import Permission

# (entry date, entry type, now) -> whether the entry starts as pending
ApprovalPredicate = Callable[[date, str, datetime], bool]

# Fields whose edits are written to the audit trail, in this order
AUDITED_FIELDS = ("clock_in_at", "clock_out_at", "break_minutes", "project_task", "notes")


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """
    True if [start, end) conflicts with [other_start, other_end).
    Intervals that only share a boundary do not conflict.
    """
    return (
        (other_start <= start < other_end)
        or (other_start < end <= other_end)
        or (start <= other_start and end >= other_end)
    )


def default_requires_approval(entry_date: date, entry_type: str, now: datetime) -> bool:
    """Manual entries whose day has already started need a reviewer."""
    if entry_type != EntryType.MANUAL.value:
        return False
    return combine_local(entry_date, time.min) < now


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class TimeEntryService(BaseService):
    def __init__(self, *args, requires_approval: Optional[ApprovalPredicate] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.requires_approval = requires_approval or default_requires_approval

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_entry(self, entry_id: int) -> TimeEntry:
        entry = (
            self.db.query(TimeEntry)
            .filter(TimeEntry.id == entry_id, TimeEntry.organization_id == self.org_id)
            .first()
        )
        if not entry:
            raise NotFoundError("Time entry not found")
        return entry

    def active_entry(self, user_id: int) -> Optional[TimeEntry]:
        return (
            self.db.query(TimeEntry)
            .filter(
                TimeEntry.organization_id == self.org_id,
                TimeEntry.user_id == user_id,
                TimeEntry.clock_out_at.is_(None),
                TimeEntry.approval_status != ApprovalStatus.REJECTED.value,
            )
            .first()
        )

    def find_overlap(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> Optional[TimeEntry]:
        """First non-rejected entry of the user that conflicts with [start, end). Open entries run until now."""
        query = self.db.query(TimeEntry).filter(
            TimeEntry.organization_id == self.org_id,
            TimeEntry.user_id == user_id,
            TimeEntry.approval_status != ApprovalStatus.REJECTED.value,
            TimeEntry.clock_in_at <= end,
        )
        if exclude_id is not None:
            query = query.filter(TimeEntry.id != exclude_id)

        now = self.clock.now()
        for existing in query.all():
            existing_end = existing.clock_out_at or now
            if intervals_overlap(start, end, existing.clock_in_at, existing_end):
                return existing
        return None

    def list_entries(
        self,
        user_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[str] = None,
        entry_type: Optional[str] = None,
        project_task: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[TimeEntry], Pagination]:
        target_user = user_id or self.actor.id
        if target_user != self.actor.id:
            self._ensure(Permission.TIME_VIEW_TEAM)

        query = self.db.query(TimeEntry).filter(
            TimeEntry.organization_id == self.org_id,
            TimeEntry.user_id == target_user,
        )
        if start_date:
            query = query.filter(TimeEntry.clock_in_at >= combine_local(start_date, time.min))
        if end_date:
            query = query.filter(TimeEntry.clock_in_at < combine_local(end_date + timedelta(days=1), time.min))
        if status:
            query = query.filter(TimeEntry.approval_status == status)
        if entry_type:
            query = query.filter(TimeEntry.entry_type == entry_type)
        if project_task:
            query = query.filter(TimeEntry.project_task.ilike(f"%{project_task}%"))

        return self._paginate(query, page, page_size)

    def list_pending(self, page: int = 1, page_size: int = 20) -> Tuple[List[TimeEntry], Pagination]:
        self._ensure(Permission.TIME_APPROVE)
        query = self.db.query(TimeEntry).filter(
            TimeEntry.organization_id == self.org_id,
            TimeEntry.approval_status == ApprovalStatus.PENDING.value,
        )
        return self._paginate(query, page, page_size)

    def get_audit(self, entry_id: int) -> List[AuditRecord]:
        entry = self.get_entry(entry_id)
        if entry.user_id != self.actor.id:
            self._ensure(Permission.TIME_VIEW_TEAM)
        return self._audit().history(AuditEntity.TIME_ENTRY, entry.id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def clock_in(self) -> TimeEntry:
        if self.active_entry(self.actor.id):
            raise AlreadyClockedInError()

        entry = TimeEntry(
            organization_id=self.org_id,
            user_id=self.actor.id,
            clock_in_at=self.clock.now(),
            entry_type=EntryType.CLOCK.value,
            approval_status=ApprovalStatus.APPROVED.value,
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
        except IntegrityError:
            # Lost the race against a concurrent clock-in
            raise AlreadyClockedInError()
        self._commit()
        self.db.refresh(entry)
        self._logger.info(f"User {self.actor.id} clocked in (entry {entry.id})")
        return entry

    def clock_out(self) -> TimeEntry:
        entry = self.active_entry(self.actor.id)
        if not entry:
            raise NoActiveEntryError()

        now = self.clock.now()
        entry.clock_out_at = now
        entry.updated_at = now
        self._commit()
        self.db.refresh(entry)
        self._logger.info(f"User {self.actor.id} clocked out (entry {entry.id})")
        return entry

    def create_manual(
        self,
        entry_date: date,
        start_time: time,
        end_time: time,
        break_minutes: int = 0,
        project_task: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TimeEntry:
        clock_in_at = combine_local(entry_date, start_time)
        clock_out_at = combine_local(entry_date, end_time)
        if clock_out_at <= clock_in_at:
            raise InvalidRangeError()
        if self.find_overlap(self.actor.id, clock_in_at, clock_out_at):
            raise OverlapConflictError()

        now = self.clock.now()
        needs_approval = self._requires_approval(entry_date, EntryType.MANUAL.value, now)
        entry = TimeEntry(
            organization_id=self.org_id,
            user_id=self.actor.id,
            clock_in_at=clock_in_at,
            clock_out_at=clock_out_at,
            break_minutes=break_minutes,
            project_task=_blank_to_none(project_task),
            notes=_blank_to_none(notes),
            entry_type=EntryType.MANUAL.value,
            approval_status=(ApprovalStatus.PENDING if needs_approval else ApprovalStatus.APPROVED).value,
            approver_user_id=None if needs_approval else self.actor.id,
            approved_at=None if needs_approval else now,
        )
        self.db.add(entry)
        self._commit()
        self.db.refresh(entry)
        return entry

    def update_entry(self, entry_id: int, patch: Dict[str, Any], reason: Optional[str] = None) -> TransitionResult:
        """
        Apply a partial edit. Times replace the time-of-day on the entry's own
        date; the merged interval is range- and overlap-checked before writing.
        """
        # A null time or break means "leave as is"; null text clears the field
        patch = {
            k: v for k, v in patch.items()
            if not (k in ("start_time", "end_time", "break_minutes") and v is None)
        }
        if not patch:
            raise ValidationFailedError("No changes provided")

        entry = self.get_entry(entry_id)
        if entry.user_id != self.actor.id:
            self._ensure(Permission.TIME_VIEW_TEAM)
        now = self.clock.now()
        if entry.entry_type == EntryType.MANUAL.value and entry.clock_in_at < now:
            self._ensure(Permission.TIME_EDIT_PAST)

        entry_day = local_date(entry.clock_in_at)
        proposed = {
            "clock_in_at": combine_local(entry_day, patch["start_time"]) if "start_time" in patch else entry.clock_in_at,
            "clock_out_at": combine_local(entry_day, patch["end_time"]) if "end_time" in patch else entry.clock_out_at,
            "break_minutes": patch.get("break_minutes", entry.break_minutes),
            "project_task": _blank_to_none(patch["project_task"]) if "project_task" in patch else entry.project_task,
            "notes": _blank_to_none(patch["notes"]) if "notes" in patch else entry.notes,
        }

        final_in = proposed["clock_in_at"]
        final_out = proposed["clock_out_at"]
        if final_out is not None and final_out <= final_in:
            raise InvalidRangeError()
        if self.find_overlap(entry.user_id, final_in, final_out or final_in, exclude_id=entry.id):
            raise OverlapConflictError()

        changes = {
            name: (getattr(entry, name), proposed[name])
            for name in AUDITED_FIELDS
            if getattr(entry, name) != proposed[name]
        }
        status = entry.approval_status
        if not changes:
            return TransitionResult(record=entry, previous_status=status, status=status, changed=False)

        for name, (_, new) in changes.items():
            setattr(entry, name, new)
        entry.edited_by = self.actor.id
        entry.updated_at = now
        self._commit()
        self.db.refresh(entry)

        audit = self._run_side_effect(
            "audit",
            lambda: {"records": len(self._audit().record_changes(
                AuditEntity.TIME_ENTRY, entry.id, self.actor.id, changes, reason
            ))},
        )
        return TransitionResult(record=entry, previous_status=status, status=status, changed=True, side_effects=[audit])

    def delete_entry(self, entry_id: int) -> TransitionResult:
        """Soft delete: the entry moves to rejected and stays in the store."""
        entry = self.get_entry(entry_id)
        if entry.user_id != self.actor.id:
            self._ensure(Permission.TIME_VIEW_TEAM)

        previous = entry.approval_status
        target = ApprovalStatus.REJECTED.value
        if previous == target:
            return TransitionResult(record=entry, previous_status=previous, status=previous, changed=False)
        TIME_ENTRY_MACHINE.check(previous, target)

        now = self.clock.now()
        compare_and_set_status(
            self.db, TimeEntry, entry.id, previous,
            {"approval_status": target, "edited_by": self.actor.id, "updated_at": now},
            status_column="approval_status",
        )
        self._commit()
        self.db.refresh(entry)

        audit = self._audit_status(entry, previous, target, "Entry deleted")
        return TransitionResult(record=entry, previous_status=previous, status=target, changed=True, side_effects=[audit])

    def review_entry(self, entry_id: int, decision: str, reason: Optional[str] = None) -> TransitionResult:
        self._ensure(Permission.TIME_APPROVE)
        entry = self.get_entry(entry_id)

        previous = entry.approval_status
        if previous != ApprovalStatus.PENDING.value:
            raise PreconditionFailedError(f"Cannot approve or reject a {previous} entry")
        target = (ApprovalStatus.APPROVED if decision == "approve" else ApprovalStatus.REJECTED).value
        TIME_ENTRY_MACHINE.require_reason(target, reason)
        TIME_ENTRY_MACHINE.check(previous, target)

        now = self.clock.now()
        compare_and_set_status(
            self.db, TimeEntry, entry.id, previous,
            {
                "approval_status": target,
                "approver_user_id": self.actor.id,
                "approved_at": now if target == ApprovalStatus.APPROVED.value else None,
                "updated_at": now,
            },
            status_column="approval_status",
        )
        self._commit()
        self.db.refresh(entry)
        self._logger.info(f"Time entry {entry.id} {target} by user {self.actor.id}")

        audit = self._audit_status(entry, previous, target, reason)
        return TransitionResult(record=entry, previous_status=previous, status=target, changed=True, side_effects=[audit])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _requires_approval(self, entry_date: date, entry_type: str, now: datetime) -> bool:
        try:
            return bool(self.requires_approval(entry_date, entry_type, now))
        except Exception as exc:
            self._logger.warning(f"Approval predicate failed, defaulting to pending: {exc}", exc_info=True)
            return True

    def _audit(self) -> AuditService:
        return AuditService(self.db, self.org_id, actor=self.actor, clock=self.clock)

    def _audit_status(self, entry: TimeEntry, old: str, new: str, reason: Optional[str]):
        return self._run_side_effect(
            "audit",
            lambda: {"record_id": self._audit().record(
                AuditEntity.TIME_ENTRY, entry.id, self.actor.id, "approval_status", old, new, reason
            ).id},
        )

    def _paginate(self, query, page: int, page_size: int) -> Tuple[List[TimeEntry], Pagination]:
        total = query.count()
        entries = (
            query.order_by(TimeEntry.clock_in_at.desc(), TimeEntry.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return entries, Pagination.build(page, page_size, total)
