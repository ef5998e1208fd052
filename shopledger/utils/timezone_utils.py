from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

import pytz

DEFAULT_TIMEZONE = "UTC"


class TimezoneUtils:
    """UTC timestamps and shop-local calendar helpers."""

    @staticmethod
    def validate_timezone(tz_name: str | None) -> bool:
        """Return True when the timezone string exists in pytz."""
        return bool(tz_name) and tz_name in pytz.all_timezones_set

    @staticmethod
    def _get_timezone(tz_name: str | None):
        if not TimezoneUtils.validate_timezone(tz_name):
            return pytz.timezone(DEFAULT_TIMEZONE)
        return pytz.timezone(tz_name)

    @staticmethod
    def utc_now() -> datetime:
        """Return the current UTC timestamp (timezone aware)."""
        return datetime.now(dt_timezone.utc)

    @staticmethod
    def now_in(tz_name: str | None) -> datetime:
        """Return the current time in ``tz_name``, falling back to UTC when invalid."""
        return TimezoneUtils.utc_now().astimezone(TimezoneUtils._get_timezone(tz_name))

    @staticmethod
    def current_year(tz_name: str | None = None) -> int:
        return TimezoneUtils.now_in(tz_name).year

    @staticmethod
    def ensure_timezone_aware(dt: datetime | None, assume_utc: bool = True) -> datetime | None:
        """Guarantee that a datetime carries timezone information."""
        if dt is None:
            return None
        if dt.tzinfo is None:
            if not assume_utc:
                raise ValueError("Naive datetime provided without explicit timezone handling.")
            return dt.replace(tzinfo=dt_timezone.utc)
        return dt

    @staticmethod
    def isoformat(dt: datetime | None) -> str | None:
        aware = TimezoneUtils.ensure_timezone_aware(dt)
        return aware.isoformat() if aware else None
