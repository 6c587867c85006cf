"""
Approval State Machine.

One machine definition per record kind (time entry, leave request, overtime
request). A machine only answers "may this record move from A to B"; the
services own the record-specific guards, the write and the side effects.

Status writes go through ``compare_and_set_status``: a single conditional
UPDATE on the expected current status. Two reviewers racing on the same record
cannot both win, and the loser posts no ledger delta.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, PreconditionFailedError, ValidationFailedError
from app.core.schemas import SideEffectOutcome
from app.models.leave_request import LeaveStatus
from app.models.overtime_request import OvertimeRequestStatus
from app.models.time_entry import ApprovalStatus


@dataclass(frozen=True)
class ApprovalMachine:
    label: str
    transitions: Dict[str, FrozenSet[str]]
    # Target states that need a reason from the reviewer
    reason_required: FrozenSet[str]
    # Re-requesting the current state returns the record unchanged
    idempotent: bool = False

    def check(self, current: str, target: str) -> bool:
        """
        Validate ``current -> target``.
        Returns False for an idempotent no-op, raises PreconditionFailedError
        when the move is not allowed.
        """
        if current == target:
            if self.idempotent:
                return False
            raise PreconditionFailedError(f"{self.label.capitalize()} is already {current}")
        if target not in self.transitions.get(current, frozenset()):
            raise PreconditionFailedError(f"Cannot move a {current} {self.label} to {target}")
        return True

    def require_reason(self, target: str, reason: Optional[str]) -> None:
        if target in self.reason_required and not (reason and reason.strip()):
            raise ValidationFailedError(f"A reason is required when moving a {self.label} to {target}")


TIME_ENTRY_MACHINE = ApprovalMachine(
    label="time entry",
    transitions={
        ApprovalStatus.PENDING.value: frozenset({ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value}),
        # Deletion of an approved entry
        ApprovalStatus.APPROVED.value: frozenset({ApprovalStatus.REJECTED.value}),
        ApprovalStatus.REJECTED.value: frozenset(),
    },
    reason_required=frozenset({ApprovalStatus.REJECTED.value}),
)

LEAVE_REQUEST_MACHINE = ApprovalMachine(
    label="leave request",
    transitions={
        LeaveStatus.PENDING.value: frozenset({
            LeaveStatus.APPROVED.value, LeaveStatus.DENIED.value, LeaveStatus.CANCELLED.value,
        }),
        LeaveStatus.APPROVED.value: frozenset({LeaveStatus.DENIED.value, LeaveStatus.CANCELLED.value}),
        LeaveStatus.DENIED.value: frozenset({LeaveStatus.APPROVED.value}),
        LeaveStatus.CANCELLED.value: frozenset(),
    },
    reason_required=frozenset({LeaveStatus.DENIED.value}),
    idempotent=True,
)

OVERTIME_REQUEST_MACHINE = ApprovalMachine(
    label="overtime request",
    transitions={
        OvertimeRequestStatus.PENDING.value: frozenset({
            OvertimeRequestStatus.APPROVED.value, OvertimeRequestStatus.DENIED.value,
        }),
        OvertimeRequestStatus.APPROVED.value: frozenset(),
        OvertimeRequestStatus.DENIED.value: frozenset(),
    },
    reason_required=frozenset({OvertimeRequestStatus.DENIED.value}),
)


@dataclass
class TransitionResult:
    record: Any
    previous_status: str
    status: str
    changed: bool
    side_effects: List[SideEffectOutcome] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [f"{o.name}: {o.error}" for o in self.side_effects if not o.ok]


def compare_and_set_status(
    db: Session,
    model,
    record_id: int,
    expected_status: str,
    values: Dict[str, Any],
    status_column: str = "status",
) -> None:
    """Write ``values`` only if the row still has ``expected_status``."""
    column = getattr(model, status_column)
    updated = (
        db.query(model)
        .filter(model.id == record_id, column == expected_status)
        .update(values, synchronize_session=False)
    )
    if updated == 0:
        raise ConflictError(f"Record {record_id} was modified concurrently", error_code="CONCURRENT_MODIFICATION")
