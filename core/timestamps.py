"""timestamps.py

Canonical timestamp handling for normalized events.
Every feed timestamp is rendered as UTC ISO-8601 with millisecond precision
(``2024-01-02T03:04:05.678Z``) so that string order and instant order agree.
"""

from datetime import datetime, timezone
from typing import Any, Optional

_EPOCH_MS_THRESHOLD = 1e12


def now_iso() -> str:
    return format_instant(datetime.now(timezone.utc))


def format_instant(dt: datetime) -> str:
    """Render an aware or naive (assumed UTC) datetime in canonical form."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse a feed timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (``Z`` suffix, offsets, naive, date-only or
    space-separated), epoch seconds and epoch milliseconds (int, float or
    numeric string). Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        return _from_epoch(float(text))
    except ValueError:
        pass

    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00").replace("z", "+00:00"))
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch(number: float) -> Optional[datetime]:
    if number <= 0:
        return None
    seconds = number / 1000.0 if number >= _EPOCH_MS_THRESHOLD else number
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def normalize_timestamp(*candidates: Any) -> str:
    """First parseable candidate in canonical form, else now."""
    for candidate in candidates:
        dt = parse_instant(candidate)
        if dt is not None:
            return format_instant(dt)
    return now_iso()
