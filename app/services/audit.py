"""
Audit Recorder.

Append-only, field-level history for time entries, leave requests and
overtime requests. Writers call it from inside a post-commit side effect, so a
failed audit insert is reported but never undoes the change it describes.
"""
import enum
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from app.models.audit_record import AuditRecord, AuditEntity
from app.services.base import BaseService


def _jsonable(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class AuditService(BaseService):
    def record(
        self,
        entity_type: AuditEntity,
        entity_id: int,
        changed_by: int,
        field_name: str,
        old_value: Any,
        new_value: Any,
        reason: Optional[str] = None,
    ) -> AuditRecord:
        entry = AuditRecord(
            organization_id=self.org_id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            changed_by=changed_by,
            field_name=field_name,
            old_value=_jsonable(old_value),
            new_value=_jsonable(new_value),
            reason=reason,
            created_at=self.clock.now(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def record_changes(
        self,
        entity_type: AuditEntity,
        entity_id: int,
        changed_by: int,
        changes: Dict[str, Tuple[Any, Any]],
        reason: Optional[str] = None,
    ) -> List[AuditRecord]:
        """One row per field in ``changes`` ({field: (old, new)})."""
        return [
            self.record(entity_type, entity_id, changed_by, field, old, new, reason)
            for field, (old, new) in changes.items()
        ]

    def history(self, entity_type: AuditEntity, entity_id: int) -> List[AuditRecord]:
        return (
            self.db.query(AuditRecord)
            .filter(
                AuditRecord.organization_id == self.org_id,
                AuditRecord.entity_type == entity_type.value,
                AuditRecord.entity_id == entity_id,
            )
            .order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .all()
        )
