from typing import List, Optional

from pydantic import BaseModel

from app.schemas.leave import LeaveBalanceResponse
from app.schemas.time_entry import TimeEntryResponse


class TimeSummaryResponse(BaseModel):
    hours_this_week: float
    target_hours: float
    active_entry: Optional[TimeEntryResponse] = None
    leave_balances: List[LeaveBalanceResponse] = []
