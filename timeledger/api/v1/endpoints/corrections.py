"""
Admin entry review & correction endpoints.

Every mutation goes through POST /admin/corrections with a body tagged
by ``kind`` (create | edit | bulk_shift | delete). Targets outside the
admin's organization answer 404, never 403.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.api.v1.deps import get_admin_context, get_audit_sink, get_db
from timeledger.models.entry import Entry
from timeledger.models.entry_correction import EntryCorrection
from timeledger.schemas.correction import (BulkShiftCorrection,
                                           CorrectionEnvelope,
                                           CreateEntryCorrection,
                                           EditEntryCorrection)
from timeledger.schemas.entry import (AdminEntriesResponse, CorrectionResponse,
                                      EntryCorrectionRead, EntryRead,
                                      WorkDayKeyRead)
from timeledger.services import correction_ledger as ledger
from timeledger.services.audit import AuditSink
from timeledger.services.context import OrgContext
from timeledger.services.day_boundary import parse_local_date, utc_range_of
from timeledger.services.keys import WorkDayKey

router = APIRouter(prefix="/admin", tags=["corrections"])
logger = logging.getLogger(__name__)


def _key_read(key: WorkDayKey) -> WorkDayKeyRead:
    return WorkDayKeyRead(
        user_id=key.user_id, date=key.local_date.isoformat(), location_id=key.location_id
    )


@router.get("/entries", response_model=AdminEntriesResponse)
async def list_user_entries(
    user_id: int,
    start_date: str | None = Query(default=None, description="YYYY-MM-DD, local"),
    end_date: str | None = Query(default=None, description="YYYY-MM-DD, local, inclusive"),
    type: str | None = None,
    location_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_admin_context),
) -> AdminEntriesResponse:
    """Entries of one member plus the correction history of those entries."""
    member = await ledger.require_member(db, ctx, user_id)

    query = (
        select(Entry)
        .where(Entry.user_id == member.id)
        .order_by(Entry.timestamp_server.desc(), Entry.id.desc())
    )
    if start_date:
        start, _ = utc_range_of(parse_local_date(start_date, "start_date"), ctx.timezone)
        query = query.where(Entry.timestamp_server >= start)
    if end_date:
        _, end = utc_range_of(parse_local_date(end_date, "end_date"), ctx.timezone)
        query = query.where(Entry.timestamp_server < end)
    if type and type != "ALL":
        query = query.where(Entry.type == type)
    if location_id is not None:
        query = query.where(Entry.location_id == location_id)
    entries = list((await db.execute(query)).scalars().all())

    corrections: list[EntryCorrection] = []
    if entries:
        result = await db.execute(
            select(EntryCorrection)
            .where(EntryCorrection.entry_id.in_([e.id for e in entries]))
            .order_by(EntryCorrection.created_at.desc(), EntryCorrection.id.desc())
        )
        corrections = list(result.scalars().all())

    return AdminEntriesResponse(
        user_id=member.id,
        email=member.email,
        full_name=member.full_name,
        entries=[EntryRead.model_validate(e) for e in entries],
        corrections=[EntryCorrectionRead.model_validate(c) for c in corrections],
    )


@router.get(
    "/entries/{entry_id}/corrections", response_model=list[EntryCorrectionRead]
)
async def entry_corrections(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_admin_context),
) -> list[EntryCorrection]:
    """Correction history of one entry, including deleted ones."""
    return await ledger.list_corrections(db, ctx, entry_id)


@router.post("/corrections", response_model=CorrectionResponse)
async def apply_correction(
    envelope: CorrectionEnvelope,
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_admin_context),
    audit: AuditSink = Depends(get_audit_sink),
) -> CorrectionResponse:
    """Create, edit, bulk-shift or delete entries with a mandatory reason."""
    body = envelope.root
    if isinstance(body, CreateEntryCorrection):
        outcome = await ledger.create_entry(db, ctx, body, audit)
    elif isinstance(body, EditEntryCorrection):
        outcome = await ledger.edit_entry(db, ctx, body, audit)
    elif isinstance(body, BulkShiftCorrection):
        outcome = await ledger.shift_entries(db, ctx, body, audit)
    else:
        outcome = await ledger.delete_entries(db, ctx, body, audit)

    if outcome.batch.failed:
        logger.warning(
            "%s applied to %s but %d WorkDay(s) are stale",
            outcome.kind,
            outcome.applied,
            len(outcome.batch.failed),
        )

    return CorrectionResponse(
        success=True,
        kind=outcome.kind,
        applied=outcome.applied,
        skipped=outcome.skipped,
        reconciled=[_key_read(r.key) for r in outcome.batch.reconciled],
        failed=[_key_read(k) for k in outcome.batch.failed],
        entry=EntryRead.model_validate(outcome.entry) if outcome.entry is not None else None,
    )
