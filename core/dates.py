"""
core/dates.py -- Tolerant date parsing and day/year arithmetic.

Exports from the upstream tools disagree on date formats (ISO 8601 with and
without a time part, US month/day/year with 12- or 24-hour clocks) and some
emit sentinel values for "never". parse_date() normalises all of them to a
timezone-aware UTC datetime, or returns None when the value is missing,
unparseable, the epoch sentinel, or outside the configured year window.

Never raises for data problems -- "unknown" is a valid, low-confidence state
that downstream age and activity logic handles explicitly.
"""

from datetime import datetime, timezone
from typing import Optional

from core.config import Settings, get_settings

_EPOCH_SENTINELS = {"1970-01-01 00:00:00", "1970-01-01T00:00:00Z", "1970-01-01"}

# Tried in order after datetime.fromisoformat() fails.
_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%m/%d/%y %H:%M",
    "%m/%d/%y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%b %d, %Y",
    "%d %b %Y",
    "%Y-%m-%d %H:%M:%S.%f",
)

SECONDS_PER_DAY = 86400
DAYS_PER_YEAR = 365.25


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        # Naive timestamps in the exports are UTC.
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: Optional[str], settings: Optional[Settings] = None) -> Optional[datetime]:
    """Parse an export timestamp. Returns None for anything unusable."""
    if not value:
        return None
    text = value.strip()
    if not text or text in _EPOCH_SENTINELS:
        return None

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None

    settings = settings or get_settings()
    if not settings.valid_year_min <= parsed.year <= settings.valid_year_max:
        return None
    return _as_utc(parsed)


def days_between(first: datetime, second: datetime) -> int:
    """Whole days between two instants, order-insensitive (floor)."""
    return int(abs((_as_utc(second) - _as_utc(first)).total_seconds()) // SECONDS_PER_DAY)


def years_between(first: datetime, second: datetime) -> float:
    return days_between(first, second) / DAYS_PER_YEAR


def shift_years(dt: datetime, years: int) -> datetime:
    """Move a date by whole years, clamping 29 February to the 28th."""
    try:
        return dt.replace(year=dt.year + years)
    except ValueError:
        return dt.replace(year=dt.year + years, day=28)
