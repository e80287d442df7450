"""
WorkDay keys and the single rule for which keys a mutation touches.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import NamedTuple

from timeledger.services.day_boundary import TzLike, local_date_of


class WorkDayKey(NamedTuple):
    user_id: int
    local_date: date
    location_id: int

    def __str__(self) -> str:
        return f"user={self.user_id} date={self.local_date.isoformat()} location={self.location_id}"


class EntryState(NamedTuple):
    """The fields of an entry that decide which WorkDay it belongs to."""

    user_id: int
    location_id: int
    timestamp: datetime

    @classmethod
    def of(cls, entry) -> EntryState:
        return cls(entry.user_id, entry.location_id, entry.timestamp_server)

    def key(self, tz: TzLike) -> WorkDayKey:
        return WorkDayKey(self.user_id, local_date_of(self.timestamp, tz), self.location_id)


def affected_keys(
    old: EntryState | None,
    new: EntryState | None,
    tz: TzLike,
) -> set[WorkDayKey]:
    """Keys to reconcile when an entry moves from *old* to *new*.

    ``old`` is ``None`` for a creation, ``new`` is ``None`` for a deletion.
    """
    keys: set[WorkDayKey] = set()
    for state in (old, new):
        if state is not None:
            keys.add(state.key(tz))
    return keys


def sorted_keys(keys: set[WorkDayKey]) -> list[WorkDayKey]:
    return sorted(keys, key=lambda k: (k.user_id, k.local_date, k.location_id))
