from sqlalchemy import Column, Integer, Float, Date, String, ForeignKey, Index
from sqlalchemy.sql import func
from app.database import Base, UTCDateTime


class LeaveBalance(Base):
    """
    Allocation and year-to-date usage for one employee, leave type and period.
    ``remaining`` is derived; approval transitions only ever move ``used_ytd``.
    """
    __tablename__ = "leave_balances"
    __table_args__ = (
        Index("ix_leave_balances_lookup", "organization_id", "employee_id", "leave_type_id", "period_start"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)

    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    balance_days = Column(Float, nullable=False, default=0.0)
    used_ytd = Column(Float, nullable=False, default=0.0)
    notes = Column(String(500), nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True)

    @property
    def remaining(self) -> float:
        return round((self.balance_days or 0.0) - (self.used_ytd or 0.0), 2)
