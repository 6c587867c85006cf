from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey
from app.database import Base


class OvertimeRule(Base):
    """Daily/weekly hour thresholds. The calculator uses the tenant's default rule."""
    __tablename__ = "overtime_rules"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    daily_threshold = Column(Float, nullable=False, default=8.0)
    weekly_threshold = Column(Float, nullable=False, default=40.0)
    daily_multiplier = Column(Float, nullable=False, default=1.5)
    weekly_multiplier = Column(Float, nullable=False, default=1.5)
    is_default = Column(Boolean, default=False, nullable=False)
