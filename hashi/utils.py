"""Small helpers shared across modules"""

import json
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """UTC 'now' as tz-naive datetime (consistent with stored timestamps)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to UTC tz-naive (safe for comparisons)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO8601 timestamps from either API into UTC tz-naive datetimes."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return normalize_utc_naive(value)
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return normalize_utc_naive(dt)


def parse_json(text: Any) -> Optional[Any]:
    """Parse JSON, returning None instead of raising on malformed input."""
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None
