"""
contact_intake/utils/timezone.py — Timezone handling for notification timestamps
Stored timestamps are naive UTC; notifications show local time in the
configured NOTIFICATION_TIMEZONE.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import pytz

from contact_intake.config import get_settings

settings = get_settings()

UTC = pytz.utc


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def notification_tz() -> pytz.BaseTzInfo:
    """Configured timezone, falling back to UTC for unknown names."""
    try:
        return pytz.timezone(settings.notification_timezone)
    except pytz.UnknownTimeZoneError:
        return UTC


def to_local(dt: datetime, tz: Optional[pytz.BaseTzInfo] = None) -> datetime:
    """Convert a (naive = UTC) datetime to the notification timezone."""
    if dt.tzinfo is None:
        dt = UTC.localize(dt)
    return dt.astimezone(tz or notification_tz())


def format_local(dt: datetime, tz: Optional[pytz.BaseTzInfo] = None) -> str:
    """Human-readable local timestamp, e.g. '19/10/2026 14:05:09 -05'."""
    return to_local(dt, tz).strftime("%d/%m/%Y %H:%M:%S %Z")
