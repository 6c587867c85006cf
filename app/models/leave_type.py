from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class LeaveType(Base):
    """
    Kind of leave offered by a tenant.
    Requests for a type with ``requires_approval`` off are approved on submission.
    """
    __tablename__ = "leave_types"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_leave_type_org_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False)  # Uppercase identifier like "PTO", "SICK"

    requires_approval = Column(Boolean, default=True, nullable=False)
    allow_negative_balance = Column(Boolean, default=False, nullable=False)
    minimum_entitlement_days = Column(Float, nullable=True)
    enforce_minimum_entitlement = Column(Boolean, default=False, nullable=False)
    color = Column(String(7), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
