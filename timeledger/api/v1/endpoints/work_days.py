"""
WorkDay endpoints — the reconcile trigger and the read paths.

Reads never re-derive anything: they return the stored WorkDay rows.
The CSV export is a plain dump for payroll import, one row per WorkDay.
"""

from __future__ import annotations

import csv
import io
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.api.v1.deps import (get_admin_context, get_audit_sink, get_db,
                                    get_org_context)
from timeledger.models.user import User
from timeledger.models.work_day import WorkDay
from timeledger.schemas.work_day import (ReconcileRequest, ReconcileResponse,
                                         WorkDayRead)
from timeledger.services import aggregator
from timeledger.services.audit import AuditSink
from timeledger.services.context import OrgContext
from timeledger.services.correction_ledger import (require_location,
                                                   require_member)
from timeledger.services.day_boundary import get_zone, parse_local_date
from timeledger.services.keys import WorkDayKey

router = APIRouter(prefix="/workdays", tags=["workdays"])
logger = logging.getLogger(__name__)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_work_day(
    body: ReconcileRequest,
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_admin_context),
    audit: AuditSink = Depends(get_audit_sink),
) -> ReconcileResponse:
    """Recompute one WorkDay from its entries (safe to repeat)."""
    tz = get_zone(body.timezone).key if body.timezone else ctx.timezone
    await require_member(db, ctx, body.user_id)
    await require_location(db, ctx, body.location_id)

    key = WorkDayKey(body.user_id, parse_local_date(body.date), body.location_id)
    result = await aggregator.reconcile(db, key, tz, min_daily_minutes=ctx.min_daily_minutes)
    work_day = await db.get(WorkDay, result.work_day_id) if result.work_day_id else None

    await audit.record(
        ctx.org_id,
        ctx.actor_id,
        "WORKDAY_RECONCILED",
        "WorkDay",
        result.work_day_id,
        {
            "user_id": body.user_id,
            "date": body.date,
            "location_id": body.location_id,
            "timezone": tz,
            "entry_count": result.entry_count,
        },
    )
    return ReconcileResponse(
        success=True,
        user_id=body.user_id,
        date=body.date,
        location_id=body.location_id,
        timezone=tz,
        entry_count=result.entry_count,
        work_day=WorkDayRead.model_validate(work_day) if work_day else None,
        warnings=list(result.pairing.warnings),
    )


async def _query_work_days(
    db: AsyncSession,
    ctx: OrgContext,
    user_id: int | None,
    start_date: str | None,
    end_date: str | None,
) -> list[WorkDay]:
    query = (
        select(WorkDay)
        .join(User, WorkDay.user_id == User.id)
        .where(User.org_id == ctx.org_id)
        .order_by(WorkDay.date.asc(), WorkDay.user_id.asc(), WorkDay.location_id.asc())
    )
    if user_id is not None and user_id != ctx.actor_id:
        if not ctx.is_admin:
            raise HTTPException(status_code=404, detail="User not found in organization")
        await require_member(db, ctx, user_id)
    if user_id is not None or not ctx.is_admin:
        query = query.where(WorkDay.user_id == (user_id or ctx.actor_id))
    # Dates are stored as YYYY-MM-DD, so string order is date order
    if start_date:
        query = query.where(WorkDay.date >= parse_local_date(start_date, "start_date").isoformat())
    if end_date:
        query = query.where(WorkDay.date <= parse_local_date(end_date, "end_date").isoformat())
    result = await db.execute(query)
    return list(result.scalars().all())


@router.get("", response_model=list[WorkDayRead])
async def list_work_days(
    user_id: int | None = None,
    start_date: str | None = Query(default=None, description="YYYY-MM-DD"),
    end_date: str | None = Query(default=None, description="YYYY-MM-DD, inclusive"),
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
) -> list[WorkDay]:
    """Stored WorkDays; employees see their own, admins may pass ``user_id``."""
    return await _query_work_days(db, ctx, user_id, start_date, end_date)


@router.get("/export.csv")
async def export_work_days_csv(
    start_date: str = Query(...),
    end_date: str = Query(...),
    user_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_admin_context),
) -> StreamingResponse:
    """Export WorkDays in a date range as a CSV download."""
    work_days = await _query_work_days(db, ctx, user_id, start_date, end_date)

    def iter_csv():
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(
            [
                "user_id",
                "location_id",
                "date",
                "total_minutes",
                "break_minutes",
                "meets_policy",
                "first_clock_in",
                "last_clock_out",
            ]
        )
        for wd in work_days:
            writer.writerow(
                [
                    wd.user_id,
                    wd.location_id,
                    wd.date,
                    wd.total_minutes,
                    wd.break_minutes,
                    "yes" if wd.meets_policy else "no",
                    wd.first_clock_in.isoformat() if wd.first_clock_in else "",
                    wd.last_clock_out.isoformat() if wd.last_clock_out else "",
                ]
            )
        yield buffer.getvalue()

    filename = f"workdays_{start_date}_{end_date}.csv"
    return StreamingResponse(
        iter_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
