"""
Correction ledger — every administrative change to raw entries.

Each operation writes one ``EntryCorrection`` per entry, flushed ahead of
the entry mutation inside the same per-entry transaction, so an entry
never changes without its audit record. After the entry rows are
committed, every affected WorkDay key is reconciled; a reconcile failure
is reported in the result but never rolls the correction back.

When a ``request_id`` is supplied, entries that already carry a
correction for that id are skipped, which makes a retried bulk
operation safe.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.core.exceptions import CorrectionFailed, NotFound
from timeledger.models.entry import Entry
from timeledger.models.entry_correction import EntryCorrection
from timeledger.models.organization import Location
from timeledger.models.user import User
from timeledger.schemas.correction import (BulkShiftCorrection,
                                           CreateEntryCorrection,
                                           DeleteEntriesCorrection,
                                           EditEntryCorrection)
from timeledger.services.aggregator import BatchResult, reconcile_many
from timeledger.services.audit import AuditSink
from timeledger.services.context import OrgContext
from timeledger.services.day_boundary import ensure_utc
from timeledger.services.keys import EntryState, WorkDayKey, affected_keys

logger = logging.getLogger(__name__)

DELETED_PREFIX = "DELETED: "
STATUS_APPROVED = "APPROVED"


@dataclass
class LedgerResult:
    kind: str
    applied: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    batch: BatchResult = field(default_factory=BatchResult)
    entry: Entry | None = None


# ── Lookups (all scoped to the caller's organization) ───────────────
async def require_member(db: AsyncSession, ctx: OrgContext, user_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id, User.org_id == ctx.org_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found in organization")
    return user


async def require_location(db: AsyncSession, ctx: OrgContext, location_id: int) -> Location:
    result = await db.execute(
        select(Location).where(Location.id == location_id, Location.org_id == ctx.org_id)
    )
    location = result.scalar_one_or_none()
    if location is None:
        raise NotFound("Location not found")
    return location


async def load_org_entries(
    db: AsyncSession,
    ctx: OrgContext,
    entry_ids: Iterable[int],
    *,
    tolerated: Iterable[int] = (),
) -> list[Entry]:
    """Fetch entries owned by members of the caller's organization.

    Ids that are missing or belong to another organization are reported
    alike, so the response never reveals another tenant's data.
    """
    ids = list(dict.fromkeys(entry_ids))
    result = await db.execute(
        select(Entry)
        .join(User, Entry.user_id == User.id)
        .where(Entry.id.in_(ids), User.org_id == ctx.org_id)
    )
    found = {entry.id: entry for entry in result.scalars().all()}
    allowed = set(tolerated)
    missing = [i for i in ids if i not in found and i not in allowed]
    if missing:
        raise NotFound(f"Entries not found: {missing}", untouched=ids)
    return [found[i] for i in ids if i in found]


async def _corrected_under(
    db: AsyncSession, request_id: str | None, entry_ids: list[int]
) -> set[int]:
    if not request_id:
        return set()
    result = await db.execute(
        select(EntryCorrection.entry_id).where(
            EntryCorrection.request_id == request_id,
            EntryCorrection.entry_id.in_(entry_ids),
        )
    )
    return set(result.scalars().all())


async def _tombstone_keys(
    db: AsyncSession, ctx: OrgContext, request_id: str | None, entry_ids: list[int]
) -> set[WorkDayKey]:
    """WorkDay keys of entries already deleted under *request_id*."""
    if not request_id or not entry_ids:
        return set()
    result = await db.execute(
        select(EntryCorrection)
        .join(User, EntryCorrection.corrected_by == User.id)
        .where(
            EntryCorrection.request_id == request_id,
            EntryCorrection.entry_id.in_(entry_ids),
            EntryCorrection.reason.startswith(DELETED_PREFIX),
            User.org_id == ctx.org_id,
        )
    )
    keys: set[WorkDayKey] = set()
    for tombstone in result.scalars().all():
        if tombstone.user_id is None or tombstone.location_id is None:
            continue
        old = EntryState(tombstone.user_id, tombstone.location_id, tombstone.old_timestamp)
        keys |= affected_keys(old, None, ctx.timezone)
    return keys


def _iso(dt: datetime | None) -> str | None:
    return ensure_utc(dt).isoformat() if dt is not None else None


# ── Create ──────────────────────────────────────────────────────────
async def create_entry(
    db: AsyncSession,
    ctx: OrgContext,
    cmd: CreateEntryCorrection,
    audit: AuditSink,
) -> LedgerResult:
    """Add an entry on a member's behalf."""
    ctx.require_admin()
    await require_member(db, ctx, cmd.user_id)
    await require_location(db, ctx, cmd.location_id)

    if cmd.request_id:
        previous = await db.execute(
            select(EntryCorrection.entry_id).where(
                EntryCorrection.request_id == cmd.request_id,
                EntryCorrection.corrected_by == ctx.actor_id,
                EntryCorrection.old_timestamp.is_(None),
            )
        )
        existing_id = previous.scalars().first()
        if existing_id is not None:
            entries = await load_org_entries(db, ctx, [existing_id])
            return LedgerResult(kind="create", skipped=[existing_id], entry=entries[0])

    timestamp = ensure_utc(cmd.timestamp)
    entry = Entry(
        type=cmd.type.value,
        user_id=cmd.user_id,
        location_id=cmd.location_id,
        timestamp_client=timestamp,
        timestamp_server=timestamp,
        notes=cmd.notes or f"Admin created: {cmd.reason}",
    )
    try:
        db.add(entry)
        await db.flush()
        db.add(
            EntryCorrection(
                entry_id=entry.id,
                corrected_by=ctx.actor_id,
                user_id=cmd.user_id,
                location_id=cmd.location_id,
                new_timestamp=timestamp,
                new_type=entry.type,
                reason=cmd.reason,
                status=STATUS_APPROVED,
                request_id=cmd.request_id,
            )
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise CorrectionFailed("Failed to create entry", applied=[], untouched=[]) from exc

    entry_id = entry.id
    logger.info(
        "Admin %d created %s entry %d for user %d",
        ctx.actor_id,
        entry.type,
        entry_id,
        cmd.user_id,
    )
    batch = await reconcile_many(
        db,
        affected_keys(None, EntryState.of(entry), ctx.timezone),
        ctx.timezone,
        min_daily_minutes=ctx.min_daily_minutes,
    )
    await audit.record(
        ctx.org_id,
        ctx.actor_id,
        "ENTRY_CREATED",
        "Entry",
        entry_id,
        {
            "target_user_id": cmd.user_id,
            "type": cmd.type.value,
            "timestamp": _iso(timestamp),
            "reason": cmd.reason,
            "failed_keys": [str(k) for k in batch.failed],
        },
    )
    await db.refresh(entry)
    return LedgerResult(kind="create", applied=[entry_id], batch=batch, entry=entry)


# ── Edit ────────────────────────────────────────────────────────────
async def edit_entry(
    db: AsyncSession,
    ctx: OrgContext,
    cmd: EditEntryCorrection,
    audit: AuditSink,
) -> LedgerResult:
    """Change one entry's timestamp, type, location or notes."""
    ctx.require_admin()
    (entry,) = await load_org_entries(db, ctx, [cmd.entry_id])
    entry_id = entry.id
    old = EntryState.of(entry)

    if entry_id in await _corrected_under(db, cmd.request_id, [entry_id]):
        batch = await reconcile_many(
            db,
            affected_keys(None, old, ctx.timezone),
            ctx.timezone,
            min_daily_minutes=ctx.min_daily_minutes,
        )
        await db.refresh(entry)
        return LedgerResult(kind="edit", skipped=[entry_id], batch=batch, entry=entry)

    if cmd.location_id is not None and cmd.location_id != entry.location_id:
        await require_location(db, ctx, cmd.location_id)

    old_type = entry.type
    new_timestamp = ensure_utc(cmd.timestamp if cmd.timestamp is not None else old.timestamp)
    new_type = cmd.type.value if cmd.type is not None else old_type

    changes: dict[str, object] = {}
    if cmd.timestamp is not None:
        changes["timestamp"] = _iso(new_timestamp)
    if cmd.type is not None:
        changes["type"] = new_type
    if cmd.location_id is not None:
        changes["location_id"] = cmd.location_id
    if "notes" in cmd.model_fields_set:
        changes["notes"] = cmd.notes

    try:
        db.add(
            EntryCorrection(
                entry_id=entry_id,
                corrected_by=ctx.actor_id,
                user_id=old.user_id,
                location_id=old.location_id,
                old_timestamp=old.timestamp,
                new_timestamp=new_timestamp,
                old_type=old_type,
                new_type=new_type,
                reason=cmd.reason,
                status=STATUS_APPROVED,
                request_id=cmd.request_id,
            )
        )
        await db.flush()

        if cmd.timestamp is not None:
            entry.timestamp_server = new_timestamp
            entry.timestamp_client = new_timestamp
        entry.type = new_type
        if cmd.location_id is not None:
            entry.location_id = cmd.location_id
        if "notes" in cmd.model_fields_set:
            entry.notes = cmd.notes
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise CorrectionFailed(
            "Failed to update entry", applied=[], untouched=[entry_id]
        ) from exc

    new = EntryState(entry.user_id, entry.location_id, new_timestamp)
    logger.info("Admin %d edited entry %d: %s", ctx.actor_id, entry_id, changes)
    batch = await reconcile_many(
        db,
        affected_keys(old, new, ctx.timezone),
        ctx.timezone,
        min_daily_minutes=ctx.min_daily_minutes,
    )
    await audit.record(
        ctx.org_id,
        ctx.actor_id,
        "ENTRY_UPDATED",
        "Entry",
        entry_id,
        {
            "target_user_id": old.user_id,
            "changes": changes,
            "reason": cmd.reason,
            "failed_keys": [str(k) for k in batch.failed],
        },
    )
    await db.refresh(entry)
    return LedgerResult(kind="edit", applied=[entry_id], batch=batch, entry=entry)


# ── Bulk time-shift ─────────────────────────────────────────────────
async def shift_entries(
    db: AsyncSession,
    ctx: OrgContext,
    cmd: BulkShiftCorrection,
    audit: AuditSink,
) -> LedgerResult:
    """Move a set of entries by a fixed number of minutes."""
    ctx.require_admin()
    entries = await load_org_entries(db, ctx, cmd.entry_ids)
    ids = [entry.id for entry in entries]
    already = await _corrected_under(db, cmd.request_id, ids)
    delta = timedelta(minutes=cmd.shift_minutes)

    result = LedgerResult(kind="bulk_shift")
    keys: set[WorkDayKey] = set()
    for index, entry in enumerate(entries):
        old = EntryState.of(entry)
        if entry.id in already:
            result.skipped.append(ids[index])
            keys |= affected_keys(None, old, ctx.timezone)
            continue

        new_timestamp = ensure_utc(old.timestamp) + delta
        try:
            db.add(
                EntryCorrection(
                    entry_id=ids[index],
                    corrected_by=ctx.actor_id,
                    user_id=old.user_id,
                    location_id=old.location_id,
                    old_timestamp=old.timestamp,
                    new_timestamp=new_timestamp,
                    reason=cmd.reason,
                    status=STATUS_APPROVED,
                    request_id=cmd.request_id,
                )
            )
            await db.flush()
            entry.timestamp_server = new_timestamp
            entry.timestamp_client = new_timestamp
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            await reconcile_many(db, keys, ctx.timezone, min_daily_minutes=ctx.min_daily_minutes)
            raise CorrectionFailed(
                "Bulk shift interrupted",
                applied=result.applied + result.skipped,
                untouched=ids[index:],
            ) from exc

        result.applied.append(ids[index])
        keys |= affected_keys(old, old._replace(timestamp=new_timestamp), ctx.timezone)

    logger.info(
        "Admin %d shifted %d entries by %+d min (%d skipped)",
        ctx.actor_id,
        len(result.applied),
        cmd.shift_minutes,
        len(result.skipped),
    )
    result.batch = await reconcile_many(
        db, keys, ctx.timezone, min_daily_minutes=ctx.min_daily_minutes
    )
    await audit.record(
        ctx.org_id,
        ctx.actor_id,
        "ENTRIES_BULK_SHIFTED",
        "Entry",
        ids[0],
        {
            "entry_ids": ids,
            "shift_minutes": cmd.shift_minutes,
            "reason": cmd.reason,
            "skipped": result.skipped,
            "failed_keys": [str(k) for k in result.batch.failed],
        },
    )
    return result


# ── Delete ──────────────────────────────────────────────────────────
async def delete_entries(
    db: AsyncSession,
    ctx: OrgContext,
    cmd: DeleteEntriesCorrection,
    audit: AuditSink,
) -> LedgerResult:
    """Remove entries, leaving a tombstone correction for each."""
    ctx.require_admin()
    ids = list(dict.fromkeys(cmd.entry_ids))
    already = await _corrected_under(db, cmd.request_id, ids)
    entries = await load_org_entries(db, ctx, ids, tolerated=already)
    reason = DELETED_PREFIX + cmd.reason

    result = LedgerResult(kind="delete", skipped=[i for i in ids if i in already])
    # a retry reconciles the days of entries the first attempt removed
    keys = await _tombstone_keys(db, ctx, cmd.request_id, result.skipped)
    pending = [entry.id for entry in entries]
    for index, entry in enumerate(entries):
        entry_id = pending[index]
        old = EntryState.of(entry)
        try:
            db.add(
                EntryCorrection(
                    entry_id=entry_id,
                    corrected_by=ctx.actor_id,
                    user_id=old.user_id,
                    location_id=old.location_id,
                    old_timestamp=old.timestamp,
                    old_type=entry.type,
                    reason=reason,
                    status=STATUS_APPROVED,
                    request_id=cmd.request_id,
                )
            )
            await db.flush()
            await db.delete(entry)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            await reconcile_many(db, keys, ctx.timezone, min_daily_minutes=ctx.min_daily_minutes)
            raise CorrectionFailed(
                "Delete interrupted",
                applied=result.applied + result.skipped,
                untouched=pending[index:],
            ) from exc

        result.applied.append(entry_id)
        keys |= affected_keys(old, None, ctx.timezone)

    logger.info("Admin %d deleted entries %s", ctx.actor_id, result.applied)
    result.batch = await reconcile_many(
        db, keys, ctx.timezone, min_daily_minutes=ctx.min_daily_minutes
    )
    await audit.record(
        ctx.org_id,
        ctx.actor_id,
        "ENTRIES_DELETED",
        "Entry",
        ids[0],
        {
            "entry_ids": ids,
            "reason": cmd.reason,
            "deleted_count": len(result.applied),
            "failed_keys": [str(k) for k in result.batch.failed],
        },
    )
    return result


# ── History ─────────────────────────────────────────────────────────
async def list_corrections(
    db: AsyncSession, ctx: OrgContext, entry_id: int
) -> list[EntryCorrection]:
    """Correction history of one entry, newest first; survives the entry's deletion."""
    ctx.require_admin()
    result = await db.execute(
        select(EntryCorrection)
        .join(User, EntryCorrection.corrected_by == User.id)
        .where(EntryCorrection.entry_id == entry_id, User.org_id == ctx.org_id)
        .order_by(EntryCorrection.created_at.desc(), EntryCorrection.id.desc())
    )
    corrections = list(result.scalars().all())
    if not corrections:
        await load_org_entries(db, ctx, [entry_id])
    return corrections