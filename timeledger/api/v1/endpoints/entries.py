"""
Clock action + own-history endpoints for employees.

- POST /entries records a clock event for the caller and reconciles its day.
- GET /entries lists the caller's entries, optionally bounded by local dates.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.api.v1.deps import get_db, get_org_context
from timeledger.models.entry import Entry
from timeledger.models.work_day import WorkDay
from timeledger.schemas.entry import ClockRequest, ClockResponse, EntryRead
from timeledger.services.clock import record_clock_action
from timeledger.services.context import OrgContext
from timeledger.services.day_boundary import parse_local_date, utc_range_of

router = APIRouter(tags=["entries"])
logger = logging.getLogger(__name__)


@router.post("/entries", response_model=ClockResponse, status_code=201)
async def clock(
    body: ClockRequest,
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
) -> ClockResponse:
    """Clock in/out or start/end a break at a location."""
    entry, bounced, batch = await record_clock_action(db, ctx, body)

    total_minutes = None
    if entry.work_day_id is not None:
        work_day = await db.get(WorkDay, entry.work_day_id)
        total_minutes = work_day.total_minutes if work_day else None
    if batch.failed:
        logger.warning("Clock entry %d saved but its WorkDay is stale", entry.id)

    return ClockResponse(
        success=True,
        entry=EntryRead.model_validate(entry),
        bounced=bounced,
        work_day_id=entry.work_day_id,
        total_minutes=total_minutes,
    )


@router.get("/entries", response_model=list[EntryRead])
async def list_my_entries(
    start_date: str | None = Query(default=None, description="YYYY-MM-DD, local"),
    end_date: str | None = Query(default=None, description="YYYY-MM-DD, local, inclusive"),
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
) -> list[Entry]:
    query = (
        select(Entry)
        .where(Entry.user_id == ctx.actor_id)
        .order_by(Entry.timestamp_server.desc(), Entry.id.desc())
        .limit(limit)
    )
    if start_date:
        start, _ = utc_range_of(parse_local_date(start_date, "start_date"), ctx.timezone)
        query = query.where(Entry.timestamp_server >= start)
    if end_date:
        _, end = utc_range_of(parse_local_date(end_date, "end_date"), ctx.timezone)
        query = query.where(Entry.timestamp_server < end)
    result = await db.execute(query)
    return list(result.scalars().all())
