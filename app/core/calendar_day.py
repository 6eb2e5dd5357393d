"""Operator calendar-day helpers.

Cache keys, the daily budget reset, and task/calendar grouping all use the
same day boundary: midnight in ``APP_TIMEZONE``.
"""

from datetime import date, datetime, tzinfo

from dateutil import tz

from app.core.config import get_settings


def app_timezone(name: str | None = None) -> tzinfo:
    """Resolve the configured operator time zone (UTC if unknown)."""
    zone = tz.gettz(name or get_settings().APP_TIMEZONE)
    return zone or tz.UTC


def utc_now() -> datetime:
    return datetime.now(tz.UTC)


def local_date(now: datetime | None = None, zone: tzinfo | None = None) -> date:
    """Calendar day of ``now`` (default: current instant) in the operator zone."""
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz.UTC)
    return now.astimezone(zone or app_timezone()).date()


def day_key(now: datetime | None = None, zone: tzinfo | None = None) -> str:
    """``YYYY-MM-DD`` day bucket used for cache keys and budget rollover."""
    return local_date(now, zone).isoformat()
