from sqlalchemy import Column, Integer, String, Date, Float, Boolean, ForeignKey, Index
from sqlalchemy.sql import func
from app.database import Base, UTCDateTime
import enum


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_requests_user_dates", "organization_id", "user_id", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=True)

    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=True)
    leave_type = Column(String, index=True)  # Code snapshot of the leave type
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    # Working days, fixed when the request is created or edited
    days_count = Column(Float, nullable=False, default=0)
    half_day_start = Column(Boolean, default=False, nullable=False)
    half_day_end = Column(Boolean, default=False, nullable=False)
    note = Column(String(500), nullable=True)

    status = Column(String, default=LeaveStatus.PENDING.value, nullable=False, index=True)
    approver_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    decided_at = Column(UTCDateTime, nullable=True)
    denial_reason = Column(String(500), nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True)
