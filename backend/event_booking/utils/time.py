import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ..config import get_settings

# datetime cannot hold years past 9999; such inputs parse as the latest instant.
_EXPANDED_YEAR = re.compile(r"^\s*\+?(\d{5,6})(-\d{2}-\d{2}.*)$")


def service_zone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_naive_to_local(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc).astimezone(service_zone())


def timestamp_year(value: str) -> int | None:
    """Return the calendar year written in an ISO 8601 timestamp, if any."""
    if not isinstance(value, str):
        return None
    expanded = _EXPANDED_YEAR.match(value)
    if expanded:
        return int(expanded.group(1))
    parsed = _parse_iso(value)
    return parsed.year if parsed is not None else None


def parse_timestamp(value: str, zone: ZoneInfo | None = None) -> datetime | None:
    """Parse an ISO 8601 timestamp into naive UTC, truncated to whole seconds.

    Naive inputs are read in ``zone`` (the service zone by default). Returns
    None when the text is not a timestamp. Fractional seconds are dropped to
    match the DATETIME columns.
    """
    if not isinstance(value, str):
        return None
    expanded = _EXPANDED_YEAR.match(value)
    if expanded:
        if _parse_iso(f"9999{expanded.group(2)}") is None:
            return None
        return datetime.max
    parsed = _parse_iso(value)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone or service_zone())
    try:
        return to_utc_naive(parsed).replace(microsecond=0)
    except OverflowError:
        return datetime.max if parsed.year > 1 else datetime.min


def _parse_iso(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None
