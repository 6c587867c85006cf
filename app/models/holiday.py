from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey, UniqueConstraint
from app.database import Base


class Holiday(Base):
    """Non-working day for an organization. Half-day holidays count 0.5 working days."""
    __tablename__ = "holidays"
    __table_args__ = (
        UniqueConstraint("organization_id", "date", name="uq_holiday_org_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    name = Column(String(100), nullable=False)
    is_half_day = Column(Boolean, default=False, nullable=False)
