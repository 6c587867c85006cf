from sqlalchemy import Column, Integer, String, Float, Date, ForeignKey
from sqlalchemy.sql import func
from app.database import Base, UTCDateTime
import enum


class OvertimeRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class OvertimeRequest(Base):
    """Pre-approval for planned overtime. Has no ledger effect."""
    __tablename__ = "overtime_requests"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    estimated_hours = Column(Float, nullable=False)
    reason = Column(String(1000), nullable=False)

    status = Column(String, nullable=False, default=OvertimeRequestStatus.PENDING.value, index=True)
    approver_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    decided_at = Column(UTCDateTime, nullable=True)
    denial_reason = Column(String(500), nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
