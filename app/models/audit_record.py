from sqlalchemy import Column, Integer, String, JSON, ForeignKey, Index
from app.database import Base, UTCDateTime
import enum


class AuditEntity(str, enum.Enum):
    TIME_ENTRY = "time_entry"
    LEAVE_REQUEST = "leave_request"
    OVERTIME_REQUEST = "overtime_request"


class AuditRecord(Base):
    """
    Append-only field-level change log.
    One row per changed field per mutation; rows are never updated or deleted.
    """
    __tablename__ = "audit_records"
    __table_args__ = (
        Index("ix_audit_records_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=False)

    changed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    field_name = Column(String, nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    reason = Column(String(200), nullable=True)

    created_at = Column(UTCDateTime, nullable=False)
