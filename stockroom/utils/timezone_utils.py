from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone


class TimezoneUtils:
    @staticmethod
    def utc_now() -> datetime:
        """Return the current UTC timestamp (timezone aware)."""
        return datetime.now(dt_timezone.utc)

    @staticmethod
    def ensure_utc(value: datetime | None) -> datetime | None:
        """Attach UTC to naive datetimes read back from backends that drop tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value.astimezone(dt_timezone.utc)

    @staticmethod
    def days_from_now(days: int) -> datetime:
        return TimezoneUtils.utc_now() + timedelta(days=days)

    @staticmethod
    def parse_iso(value) -> datetime | None:
        """Parse an ISO-8601 string (or pass through a datetime); None when unparseable."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return TimezoneUtils.ensure_utc(value)
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
        return TimezoneUtils.ensure_utc(parsed)
