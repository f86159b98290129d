from datetime import date, datetime, time, timezone
from typing import Optional

from utils.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_datetime(value):
    """Coerce dates and naive datetimes to timezone-aware UTC datetimes."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        # default to midnight
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


def parse_as_of(value: Optional[str]) -> datetime:
    """
    Parse an ``as_of`` query value.

    Accepts ``YYYY-MM-DD`` or a full ISO-8601 timestamp. ``None`` means now.
    """
    if value is None or not str(value).strip():
        return utcnow()
    raw = str(value).strip()
    try:
        if len(raw) == 10:
            return ensure_datetime(date.fromisoformat(raw))
        return ensure_datetime(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError(f"Invalid date: {value}")
