"""
Calendar helpers shared by the time, overtime and summary services.

Instants are always aware UTC. Calendar dates (manual entry dates, overtime
day buckets) are interpreted in ``settings.time_zone``.
"""
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from zoneinfo import ZoneInfo

from app.core.config import settings


def store_zone() -> tzinfo:
    if settings.time_zone.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(settings.time_zone)


def combine_local(day: date, at: time) -> datetime:
    """Wall-clock ``at`` on ``day`` in the store zone, as a UTC instant."""
    return datetime.combine(day, at.replace(tzinfo=None), tzinfo=store_zone()).astimezone(timezone.utc)


def local_date(instant: datetime) -> date:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(store_zone()).date()


def start_of_week_utc(instant: datetime) -> datetime:
    """Monday 00:00 UTC of the week containing ``instant``."""
    instant = instant.astimezone(timezone.utc)
    monday = instant.date() - timedelta(days=instant.weekday())
    return datetime.combine(monday, time.min, tzinfo=timezone.utc)


def end_of_week_utc(instant: datetime) -> datetime:
    return start_of_week_utc(instant) + timedelta(days=7)


def iso_period_key(day: date) -> str:
    """ISO year-week identifier, e.g. ``2024-W01``."""
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def round_hours(value: float) -> float:
    """Round half-up to two decimals."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def clamp_non_negative(value: float) -> float:
    return value if value > 0 else 0.0


def net_minutes(clock_in: datetime, clock_out: datetime, break_minutes: int) -> float:
    """Worked minutes minus break, never negative."""
    gross = (clock_out - clock_in).total_seconds() / 60.0
    return clamp_non_negative(gross - (break_minutes or 0))
