"""
Day-boundary resolver — maps UTC instants to local calendar dates and back.

All arithmetic goes through ``zoneinfo`` so that a local day spanning a
DST transition is 23 or 25 hours wide instead of a fixed 24.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from timeledger.core.exceptions import ValidationFailed

TzLike = str | ZoneInfo


@lru_cache(maxsize=256)
def _load_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def get_zone(tz: TzLike, field: str = "timezone") -> ZoneInfo:
    """Resolve an IANA key to a ``ZoneInfo``; unknown keys are a validation error."""
    if isinstance(tz, ZoneInfo):
        return tz
    if not tz or not isinstance(tz, str):
        raise ValidationFailed(field, "timezone is required")
    try:
        return _load_zone(tz.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationFailed(field, f"unknown IANA timezone {tz!r}") from exc


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a timestamp to UTC-aware. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_local_date(value: str | date, field: str = "date") -> date:
    """Parse ``YYYY-MM-DD`` into a ``date``."""
    if isinstance(value, datetime):
        raise ValidationFailed(field, "expected a calendar date without a time component")
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(field, f"expected YYYY-MM-DD, got {value!r}") from exc


def local_date_of(instant: datetime, tz: TzLike) -> date:
    """Calendar date that *instant* falls on when read in *tz*."""
    return ensure_utc(instant).astimezone(get_zone(tz)).date()


def _local_midnight_utc(day: date, zone: ZoneInfo) -> datetime:
    # fold=0 resolves a skipped midnight to the first instant that exists
    # after the gap, and a repeated midnight to its first occurrence.
    return datetime.combine(day, time(0), tzinfo=zone).astimezone(timezone.utc)


def utc_range_of(local_date: date | str, tz: TzLike) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` UTC range covering *local_date* in *tz*."""
    day = parse_local_date(local_date)
    zone = get_zone(tz)
    return (
        _local_midnight_utc(day, zone),
        _local_midnight_utc(day + timedelta(days=1), zone),
    )


def day_length(local_date: date | str, tz: TzLike) -> timedelta:
    start, end = utc_range_of(local_date, tz)
    return end - start
