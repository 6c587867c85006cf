from fastapi import APIRouter
from app.routers import time_entries, overtime, leave

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(time_entries.router, tags=["Time"])
api_router.include_router(overtime.router, tags=["Overtime"])
api_router.include_router(leave.router, tags=["Leave"])
