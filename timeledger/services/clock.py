"""
Employee clock actions — the only non-admin path that writes entries.

The server timestamp is stamped here and is authoritative. A repeat tap
of the same type inside the bounce window returns the earlier entry
instead of writing a duplicate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.core.config import settings
from timeledger.core.exceptions import NotFound
from timeledger.models.entry import Entry
from timeledger.models.organization import Location
from timeledger.schemas.entry import ClockRequest
from timeledger.services.aggregator import BatchResult, reconcile_many
from timeledger.services.context import OrgContext
from timeledger.services.day_boundary import ensure_utc
from timeledger.services.keys import EntryState, affected_keys

logger = logging.getLogger(__name__)


async def record_clock_action(
    db: AsyncSession,
    ctx: OrgContext,
    body: ClockRequest,
) -> tuple[Entry, bool, BatchResult]:
    """Record a clock event for ``ctx.actor_id``; returns (entry, bounced, batch)."""
    result = await db.execute(
        select(Location).where(
            Location.id == body.location_id,
            Location.org_id == ctx.org_id,
            Location.is_active.is_(True),
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Location not found")

    now = datetime.now(timezone.utc)
    last_result = await db.execute(
        select(Entry)
        .where(Entry.user_id == ctx.actor_id)
        .order_by(Entry.timestamp_server.desc(), Entry.id.desc())
        .limit(1)
        .with_for_update()
    )
    last = last_result.scalar_one_or_none()
    if (
        last is not None
        and last.type == body.type.value
        and (now - ensure_utc(last.timestamp_server)).total_seconds()
        < settings.BOUNCE_WINDOW_SECONDS
    ):
        logger.info("Bounced duplicate %s for user %d", body.type.value, ctx.actor_id)
        return last, True, BatchResult()

    entry = Entry(
        type=body.type.value,
        user_id=ctx.actor_id,
        location_id=body.location_id,
        timestamp_client=ensure_utc(body.timestamp_client) if body.timestamp_client else now,
        timestamp_server=now,
        gps_latitude=body.gps_latitude,
        gps_longitude=body.gps_longitude,
        gps_accuracy=body.gps_accuracy,
        notes=body.notes,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    logger.info("Clock %s for user %d at location %d", entry.type, ctx.actor_id, entry.location_id)

    batch = await reconcile_many(
        db,
        affected_keys(None, EntryState.of(entry), ctx.timezone),
        ctx.timezone,
        min_daily_minutes=ctx.min_daily_minutes,
    )
    await db.refresh(entry)
    return entry, False, batch
