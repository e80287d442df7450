"""
System endpoints — health check and the audit log.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.api.v1.deps import get_admin_context, get_db
from timeledger.core.config import settings
from timeledger.models.audit_log import AuditLog
from timeledger.schemas.audit import AuditLogRead, HealthResponse
from timeledger.services.context import OrgContext

router = APIRouter(tags=["system"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check — DB and Redis connectivity."""
    result = HealthResponse(db=False, redis=False)

    try:
        await db.execute(select(1))
        result.db = True
    except SQLAlchemyError as e:
        logger.error("Health check DB failure: %s", e)

    try:
        r = aioredis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        try:
            await r.ping()
            result.redis = True
        finally:
            await r.aclose()
    except (RedisError, OSError) as e:
        logger.error("Health check Redis failure: %s", e)

    return result


@router.get("/audit", response_model=list[AuditLogRead])
async def list_audit_log(
    action: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    ctx: OrgContext = Depends(get_admin_context),
) -> list[AuditLog]:
    """Newest-first audit trail of the admin's organization."""
    query = (
        select(AuditLog)
        .where(AuditLog.org_id == ctx.org_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
    )
    if action:
        query = query.where(AuditLog.action == action)
    result = await db.execute(query)
    return list(result.scalars().all())
