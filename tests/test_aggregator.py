"""Tests for WorkDay reconciliation against a real (SQLite) session."""

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import TZ, add_entry, utc
from timeledger.models.entry import Entry
from timeledger.models.work_day import WorkDay
from timeledger.services import aggregator
from timeledger.services.keys import WorkDayKey


async def _work_days(db: AsyncSession) -> list[WorkDay]:
    result = await db.execute(
        select(WorkDay).order_by(WorkDay.date).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _standard_day(db, user, location):
    # 2024-05-06 09:00-17:00 EDT with a 30 minute break
    await add_entry(db, user, location, "CLOCK_IN", utc(2024, 5, 6, 13))
    await add_entry(db, user, location, "BREAK_START", utc(2024, 5, 6, 16))
    await add_entry(db, user, location, "BREAK_END", utc(2024, 5, 6, 16, 30))
    await add_entry(db, user, location, "CLOCK_OUT", utc(2024, 5, 6, 21))


@pytest.mark.asyncio
async def test_reconcile_creates_work_day(db_session, employee, location):
    """A standard day reconciles to 450 minutes and misses the 480 policy."""
    await _standard_day(db_session, employee, location)
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)

    result = await aggregator.reconcile(db_session, key, TZ, min_daily_minutes=480)

    assert result.entry_count == 4
    assert result.work_day_id is not None
    (wd,) = await _work_days(db_session)
    assert wd.date == "2024-05-06"
    assert wd.total_minutes == 450
    assert wd.break_minutes == 30
    assert wd.meets_policy is False


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(db_session, employee, location):
    """Running reconcile twice leaves exactly one identical row."""
    await _standard_day(db_session, employee, location)
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)

    first = await aggregator.reconcile(db_session, key, TZ)
    second = await aggregator.reconcile(db_session, key, TZ)

    assert first.work_day_id == second.work_day_id
    rows = await _work_days(db_session)
    assert len(rows) == 1
    assert rows[0].total_minutes == 450


@pytest.mark.asyncio
async def test_reconcile_rederives_from_entries(db_session, employee, location):
    """A hand-corrupted aggregate is overwritten with the derived totals."""
    await _standard_day(db_session, employee, location)
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)
    await aggregator.reconcile(db_session, key, TZ)

    (wd,) = await _work_days(db_session)
    wd.total_minutes = 9999
    wd.meets_policy = True
    await db_session.commit()

    await aggregator.reconcile(db_session, key, TZ)
    (wd,) = await _work_days(db_session)
    assert wd.total_minutes == 450
    assert wd.meets_policy is False


@pytest.mark.asyncio
async def test_reconcile_links_entries(db_session, employee, location):
    await _standard_day(db_session, employee, location)
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)
    result = await aggregator.reconcile(db_session, key, TZ)

    db_session.expire_all()
    entries = (await db_session.execute(select(Entry))).scalars().all()
    assert {e.work_day_id for e in entries} == {result.work_day_id}


@pytest.mark.asyncio
async def test_reconcile_without_entries_removes_work_day(db_session, employee, location):
    """Once every entry of a key is gone, its WorkDay is deleted."""
    entry = await add_entry(db_session, employee, location, "CLOCK_IN", utc(2024, 5, 6, 13))
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)
    await aggregator.reconcile(db_session, key, TZ)
    assert len(await _work_days(db_session)) == 1

    await db_session.delete(entry)
    await db_session.commit()
    result = await aggregator.reconcile(db_session, key, TZ)

    assert result.deleted is True
    assert await _work_days(db_session) == []


@pytest.mark.asyncio
async def test_reconcile_without_entries_or_row_is_a_noop(db_session, employee, location):
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)
    result = await aggregator.reconcile(db_session, key, TZ)
    assert result.work_day_id is None
    assert result.entry_count == 0
    assert await _work_days(db_session) == []


@pytest.mark.asyncio
async def test_window_follows_local_day(db_session, employee, location):
    """An entry at 02:00Z belongs to the previous New York day."""
    await add_entry(db_session, employee, location, "CLOCK_IN", utc(2024, 5, 6, 22))
    await add_entry(db_session, employee, location, "CLOCK_OUT", utc(2024, 5, 7, 2))

    batch = await aggregator.reconcile_many(
        db_session,
        [
            WorkDayKey(employee.id, date(2024, 5, 6), location.id),
            WorkDayKey(employee.id, date(2024, 5, 7), location.id),
        ],
        TZ,
    )

    assert batch.ok
    (wd,) = await _work_days(db_session)
    assert wd.date == "2024-05-06"
    assert wd.total_minutes == 240


@pytest.mark.asyncio
async def test_spring_forward_day_boundaries(db_session, employee, location):
    """On 2024-03-10 the New York day runs 05:00Z to 04:00Z next day."""
    await add_entry(db_session, employee, location, "CLOCK_IN", utc(2024, 3, 10, 6, 30))
    await add_entry(db_session, employee, location, "CLOCK_OUT", utc(2024, 3, 11, 3, 59))
    # 04:30Z on March 11 is 00:30 EDT, already March 11
    await add_entry(db_session, employee, location, "CLOCK_IN", utc(2024, 3, 11, 4, 30))

    result = await aggregator.reconcile(
        db_session, WorkDayKey(employee.id, date(2024, 3, 10), location.id), TZ
    )
    assert result.entry_count == 2
    assert result.pairing.total_minutes == 21 * 60 + 29


@pytest.mark.asyncio
async def test_reconcile_many_reports_failed_keys(db_session, employee, location, monkeypatch):
    """One failing key is reported while the others still reconcile."""
    await _standard_day(db_session, employee, location)
    good = WorkDayKey(employee.id, date(2024, 5, 6), location.id)
    bad = WorkDayKey(employee.id, date(2024, 5, 7), location.id)
    real = aggregator.reconcile

    async def flaky(db, key, tz, *, min_daily_minutes=480):
        if key == bad:
            raise OperationalError("UPDATE work_days", {}, Exception("database is locked"))
        return await real(db, key, tz, min_daily_minutes=min_daily_minutes)

    monkeypatch.setattr(aggregator, "reconcile", flaky)
    batch = await aggregator.reconcile_many(db_session, [bad, good], TZ)

    assert batch.failed == [bad]
    assert [r.key for r in batch.reconciled] == [good]
    assert not batch.ok


@pytest.mark.asyncio
async def test_recreated_entries_rederive_same_totals(db_session, employee, location):
    """Deleting and re-adding the same entries in another order gives the same WorkDay."""
    await _standard_day(db_session, employee, location)
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)
    await aggregator.reconcile(db_session, key, TZ)
    (before,) = await _work_days(db_session)
    snapshot = (before.total_minutes, before.break_minutes, before.meets_policy)

    for entry in (await db_session.execute(select(Entry))).scalars().all():
        await db_session.delete(entry)
    await db_session.commit()
    await aggregator.reconcile(db_session, key, TZ)
    assert await _work_days(db_session) == []

    await add_entry(db_session, employee, location, "CLOCK_OUT", utc(2024, 5, 6, 21))
    await add_entry(db_session, employee, location, "BREAK_END", utc(2024, 5, 6, 16, 30))
    await add_entry(db_session, employee, location, "CLOCK_IN", utc(2024, 5, 6, 13))
    await add_entry(db_session, employee, location, "BREAK_START", utc(2024, 5, 6, 16))
    await aggregator.reconcile(db_session, key, TZ)

    (after,) = await _work_days(db_session)
    assert (after.total_minutes, after.break_minutes, after.meets_policy) == snapshot


@pytest.mark.asyncio
async def test_reconcile_reads_rows_committed_by_another_session(
    db_session, session_factory, employee, location
):
    """Entries already loaded in the session are refreshed from the database."""
    await _standard_day(db_session, employee, location)
    key = WorkDayKey(employee.id, date(2024, 5, 6), location.id)
    await aggregator.reconcile(db_session, key, TZ)
    clock_out = (
        await db_session.execute(select(Entry).where(Entry.type == "CLOCK_OUT"))
    ).scalar_one()

    async with session_factory() as other:
        moved = await other.get(Entry, clock_out.id)
        moved.timestamp_server = utc(2024, 5, 6, 19)
        await other.commit()
        await aggregator.reconcile(other, key, TZ)

    result = await aggregator.reconcile(db_session, key, TZ)

    assert result.pairing.total_minutes == 330
    async with session_factory() as fresh:
        (wd,) = (await fresh.execute(select(WorkDay))).scalars().all()
    assert wd.total_minutes == 330
