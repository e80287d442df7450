"""
WorkDay aggregator — recomputes one WorkDay from its raw entries.

The aggregate is never patched incrementally: ``reconcile`` refetches
every entry of the key's local-day window, pairs them, and upserts (or
deletes) the row. Running it twice over the same entries leaves the row
unchanged, so any failed or missed reconcile can simply be re-run.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from redis.exceptions import RedisError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.models.entry import Entry
from timeledger.models.work_day import WorkDay
from timeledger.services.day_boundary import TzLike, utc_range_of
from timeledger.services.keys import WorkDayKey, sorted_keys
from timeledger.services.locks import workday_locks
from timeledger.services.pairing import PairingResult, pair_intervals

logger = logging.getLogger(__name__)

_INSERT_ATTEMPTS = 2


@dataclass(frozen=True)
class ReconcileResult:
    key: WorkDayKey
    work_day_id: int | None
    entry_count: int
    pairing: PairingResult

    @property
    def deleted(self) -> bool:
        return self.work_day_id is None


@dataclass
class BatchResult:
    reconciled: list[ReconcileResult] = field(default_factory=list)
    failed: list[WorkDayKey] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


async def _fetch_day_entries(db: AsyncSession, key: WorkDayKey, tz: TzLike) -> list[Entry]:
    start, end = utc_range_of(key.local_date, tz)
    result = await db.execute(
        select(Entry)
        .where(
            Entry.user_id == key.user_id,
            Entry.location_id == key.location_id,
            Entry.timestamp_server >= start,
            Entry.timestamp_server < end,
        )
        .order_by(Entry.timestamp_server.asc(), Entry.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _fetch_work_day(db: AsyncSession, key: WorkDayKey) -> WorkDay | None:
    result = await db.execute(
        select(WorkDay)
        .where(
            WorkDay.user_id == key.user_id,
            WorkDay.location_id == key.location_id,
            WorkDay.date == key.local_date.isoformat(),
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _apply_totals(work_day: WorkDay, pairing: PairingResult) -> None:
    work_day.total_minutes = pairing.total_minutes
    work_day.break_minutes = pairing.break_minutes
    work_day.meets_policy = pairing.meets_policy
    work_day.first_clock_in = pairing.first_clock_in
    work_day.last_clock_out = pairing.last_clock_out


async def _relink(db: AsyncSession, work_day_id: int, entry_ids: list[int]) -> None:
    # Entries that moved out of this window lose their stale back-reference;
    # the reconcile of their new key links them again.
    unlink = update(Entry).where(Entry.work_day_id == work_day_id)
    if entry_ids:
        unlink = unlink.where(Entry.id.not_in(entry_ids))
    await db.execute(unlink.values(work_day_id=None))
    if entry_ids:
        await db.execute(
            update(Entry).where(Entry.id.in_(entry_ids)).values(work_day_id=work_day_id)
        )


async def _reconcile_once(
    db: AsyncSession, key: WorkDayKey, tz: TzLike, min_daily_minutes: int
) -> ReconcileResult:
    entries = await _fetch_day_entries(db, key, tz)
    pairing = pair_intervals(entries, min_daily_minutes)
    work_day = await _fetch_work_day(db, key)

    if not entries:
        if work_day is not None:
            await _relink(db, work_day.id, [])
            await db.delete(work_day)
            logger.info("Removed empty WorkDay %d (%s)", work_day.id, key)
        await db.commit()
        return ReconcileResult(key=key, work_day_id=None, entry_count=0, pairing=pairing)

    if work_day is None:
        work_day = WorkDay(
            user_id=key.user_id,
            location_id=key.location_id,
            date=key.local_date.isoformat(),
        )
        db.add(work_day)
    _apply_totals(work_day, pairing)
    await db.flush()
    await _relink(db, work_day.id, [e.id for e in entries])
    await db.commit()

    if pairing.warnings:
        logger.info("WorkDay %s has unmatched events: %s", key, "; ".join(pairing.warnings))
    logger.debug(
        "Reconciled %s: %d min worked, %d min break over %d entries",
        key,
        pairing.total_minutes,
        pairing.break_minutes,
        len(entries),
    )
    return ReconcileResult(
        key=key, work_day_id=work_day.id, entry_count=len(entries), pairing=pairing
    )


async def reconcile(
    db: AsyncSession,
    key: WorkDayKey,
    tz: TzLike,
    *,
    min_daily_minutes: int = 480,
) -> ReconcileResult:
    """Recompute the WorkDay for *key* from its current entries.

    Serialised per key; the WorkDay row is also locked for update where
    the database supports it. A concurrent insert of the same key from
    another worker is resolved by re-reading and updating instead.
    """
    async with workday_locks.hold(key):
        for attempt in range(1, _INSERT_ATTEMPTS + 1):
            try:
                return await _reconcile_once(db, key, tz, min_daily_minutes)
            except IntegrityError:
                await db.rollback()
                if attempt == _INSERT_ATTEMPTS:
                    raise
                logger.info("WorkDay %s inserted concurrently; retrying as update", key)
            except SQLAlchemyError:
                await db.rollback()
                raise
    raise AssertionError("unreachable")


async def reconcile_many(
    db: AsyncSession,
    keys: Iterable[WorkDayKey],
    tz: TzLike,
    *,
    min_daily_minutes: int = 480,
) -> BatchResult:
    """Reconcile every key independently; a failing key never stops the rest."""
    batch = BatchResult()
    for key in sorted_keys(set(keys)):
        try:
            batch.reconciled.append(
                await reconcile(db, key, tz, min_daily_minutes=min_daily_minutes)
            )
        except (SQLAlchemyError, RedisError) as exc:
            logger.error("Reconcile failed for %s: %s", key, exc, exc_info=True)
            batch.failed.append(key)
    return batch
