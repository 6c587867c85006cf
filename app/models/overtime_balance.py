from sqlalchemy import Column, Integer, String, Float, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base, UTCDateTime


class OvertimeBalance(Base):
    __tablename__ = "overtime_balances"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", "period", name="uq_overtime_balance_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    period = Column(String(10), nullable=False)  # ISO week, e.g. "2024-W03"

    regular_hours = Column(Float, nullable=False, default=0.0)
    overtime_hours = Column(Float, nullable=False, default=0.0)
    overtime_multiplier = Column(Float, nullable=False, default=1.5)
    carry_over_hours = Column(Float, nullable=False, default=0.0)

    updated_at = Column(UTCDateTime, server_default=func.now())
