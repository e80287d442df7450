"""Tests for affected-key computation and per-key lock serialisation."""

import asyncio
from datetime import date, datetime, timezone

import pytest

from timeledger.services.keys import (EntryState, WorkDayKey, affected_keys,
                                      sorted_keys)
from timeledger.services.locks import KeyedLock

NY = "America/New_York"


def test_create_touches_only_new_key():
    new = EntryState(1, 10, datetime(2024, 5, 6, 14, tzinfo=timezone.utc))
    assert affected_keys(None, new, NY) == {WorkDayKey(1, date(2024, 5, 6), 10)}


def test_delete_touches_only_old_key():
    old = EntryState(1, 10, datetime(2024, 5, 6, 14, tzinfo=timezone.utc))
    assert affected_keys(old, None, NY) == {WorkDayKey(1, date(2024, 5, 6), 10)}


def test_move_within_day_touches_one_key():
    old = EntryState(1, 10, datetime(2024, 5, 6, 14, tzinfo=timezone.utc))
    new = old._replace(timestamp=datetime(2024, 5, 6, 15, tzinfo=timezone.utc))
    assert len(affected_keys(old, new, NY)) == 1


def test_move_across_midnight_touches_both_days():
    """23:45 local shifted by 30 minutes lands on the next local day."""
    old = EntryState(1, 10, datetime(2024, 5, 7, 3, 45, tzinfo=timezone.utc))  # 23:45 EDT May 6
    new = old._replace(timestamp=datetime(2024, 5, 7, 4, 15, tzinfo=timezone.utc))  # 00:15 May 7
    assert affected_keys(old, new, NY) == {
        WorkDayKey(1, date(2024, 5, 6), 10),
        WorkDayKey(1, date(2024, 5, 7), 10),
    }


def test_location_change_touches_both_locations():
    ts = datetime(2024, 5, 6, 14, tzinfo=timezone.utc)
    keys = affected_keys(EntryState(1, 10, ts), EntryState(1, 11, ts), NY)
    assert {k.location_id for k in keys} == {10, 11}


def test_keys_sort_by_user_date_location():
    keys = {
        WorkDayKey(2, date(2024, 1, 1), 1),
        WorkDayKey(1, date(2024, 1, 2), 1),
        WorkDayKey(1, date(2024, 1, 1), 2),
        WorkDayKey(1, date(2024, 1, 1), 1),
    }
    assert sorted_keys(keys) == [
        WorkDayKey(1, date(2024, 1, 1), 1),
        WorkDayKey(1, date(2024, 1, 1), 2),
        WorkDayKey(1, date(2024, 1, 2), 1),
        WorkDayKey(2, date(2024, 1, 1), 1),
    ]


def test_key_renders_for_logs():
    assert str(WorkDayKey(3, date(2024, 3, 10), 7)) == "user=3 date=2024-03-10 location=7"


@pytest.mark.asyncio
async def test_keyed_lock_serialises_same_key():
    locks = KeyedLock()
    key = WorkDayKey(1, date(2024, 1, 1), 1)
    active = 0
    peak = 0

    async def critical():
        nonlocal active, peak
        async with locks.hold(key):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(critical() for _ in range(5)))
    assert peak == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_allows_distinct_keys_concurrently():
    locks = KeyedLock()
    both_inside = asyncio.Event()
    inside = 0

    async def critical(key):
        nonlocal inside
        async with locks.hold(key):
            inside += 1
            if inside == 2:
                both_inside.set()
            await asyncio.wait_for(both_inside.wait(), timeout=1)

    await asyncio.gather(
        critical(WorkDayKey(1, date(2024, 1, 1), 1)),
        critical(WorkDayKey(2, date(2024, 1, 1), 1)),
    )
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_released_on_error():
    locks = KeyedLock()
    key = WorkDayKey(1, date(2024, 1, 1), 1)
    with pytest.raises(RuntimeError):
        async with locks.hold(key):
            raise RuntimeError("boom")
    assert len(locks) == 0
    async with locks.hold(key):
        pass
