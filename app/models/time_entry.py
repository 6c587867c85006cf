from sqlalchemy import Column, Integer, String, ForeignKey, Index, text
from sqlalchemy.sql import func
from app.database import Base, UTCDateTime
import enum


class EntryType(str, enum.Enum):
    CLOCK = "clock"
    MANUAL = "manual"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


_OPEN_ENTRY = text("clock_out_at IS NULL AND approval_status != 'rejected'")


class TimeEntry(Base):
    """
    A worked interval. ``clock_out_at`` is null while the entry is open.
    Deleting an entry moves it to ``rejected``; rows are never removed.
    """
    __tablename__ = "time_entries"
    __table_args__ = (
        # At most one open entry per user; closes the clock-in race in the store.
        Index(
            "uq_time_entries_open_per_user",
            "organization_id",
            "user_id",
            unique=True,
            sqlite_where=_OPEN_ENTRY,
            postgresql_where=_OPEN_ENTRY,
        ),
        Index("ix_time_entries_user_clock_in", "organization_id", "user_id", "clock_in_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    clock_in_at = Column(UTCDateTime, nullable=False)
    clock_out_at = Column(UTCDateTime, nullable=True)
    break_minutes = Column(Integer, nullable=False, default=0)
    project_task = Column(String(100), nullable=True)
    notes = Column(String(500), nullable=True)

    entry_type = Column(String, nullable=False, default=EntryType.CLOCK.value)
    approval_status = Column(String, nullable=False, default=ApprovalStatus.APPROVED.value, index=True)
    approver_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    edited_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.clock_out_at is None

    def __repr__(self):
        return f"<TimeEntry {self.id} user={self.user_id} {self.approval_status}>"
