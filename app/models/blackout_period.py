from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey
from app.database import Base


class BlackoutPeriod(Base):
    """
    Date range during which leave cannot be requested.
    A null department or leave type applies to all of them.
    """
    __tablename__ = "blackout_periods"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String(500), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
