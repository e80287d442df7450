"""
Interval pairing — turns one day's raw events into worked/break totals.

The scan keeps a single open clock-in and a single open break-start.
A repeated CLOCK_IN or BREAK_START replaces the open one (last wins); a
CLOCK_OUT or BREAK_END with nothing open adds nothing. Neither case is an
error, but both are reported as warnings so callers can surface them.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from timeledger.models.entry import EntryType
from timeledger.services.day_boundary import ensure_utc

_ONE_MS = timedelta(milliseconds=1)
MS_PER_MINUTE = 60_000


class ClockEvent(Protocol):
    type: str
    timestamp_server: datetime


@dataclass(frozen=True)
class PairingResult:
    worked_ms: int = 0
    break_ms: int = 0
    first_clock_in: datetime | None = None
    last_clock_out: datetime | None = None
    total_minutes: int = 0
    break_minutes: int = 0
    meets_policy: bool = False
    warnings: tuple[str, ...] = field(default=())


def pair_intervals(
    entries: Iterable[ClockEvent],
    min_daily_minutes: int = 480,
) -> PairingResult:
    """Pair events (ordered by server timestamp) into worked and break time."""
    worked_ms = 0
    break_ms = 0
    open_in: datetime | None = None
    open_break: datetime | None = None
    first_in: datetime | None = None
    last_out: datetime | None = None
    warnings: list[str] = []

    for entry in entries:
        ts = ensure_utc(entry.timestamp_server)
        kind = EntryType(entry.type)

        if kind is EntryType.CLOCK_IN:
            if open_in is not None:
                warnings.append(f"CLOCK_IN at {open_in.isoformat()} replaced by {ts.isoformat()}")
            open_in = ts
            if first_in is None or ts < first_in:
                first_in = ts
        elif kind is EntryType.CLOCK_OUT:
            if open_in is not None:
                worked_ms += (ts - open_in) // _ONE_MS
                open_in = None
            else:
                warnings.append(f"CLOCK_OUT at {ts.isoformat()} has no open CLOCK_IN")
            if last_out is None or ts > last_out:
                last_out = ts
        elif kind is EntryType.BREAK_START:
            if open_break is not None:
                warnings.append(
                    f"BREAK_START at {open_break.isoformat()} replaced by {ts.isoformat()}"
                )
            open_break = ts
        elif kind is EntryType.BREAK_END:
            if open_break is not None:
                break_ms += (ts - open_break) // _ONE_MS
                open_break = None
            else:
                warnings.append(f"BREAK_END at {ts.isoformat()} has no open BREAK_START")

    if open_in is not None:
        warnings.append(f"CLOCK_IN at {open_in.isoformat()} is still open")
    if open_break is not None:
        warnings.append(f"BREAK_START at {open_break.isoformat()} is still open")

    total_minutes = max(0, (worked_ms - break_ms) // MS_PER_MINUTE)
    return PairingResult(
        worked_ms=worked_ms,
        break_ms=break_ms,
        first_clock_in=first_in,
        last_clock_out=last_out,
        total_minutes=total_minutes,
        break_minutes=break_ms // MS_PER_MINUTE,
        meets_policy=total_minutes >= min_daily_minutes,
        warnings=tuple(warnings),
    )
