"""
FastAPI dependencies — database session, auth guards and org context.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.core.security import decode_access_token
from timeledger.db.session import async_session_factory
from timeledger.models.organization import Organization
from timeledger.models.user import User
from timeledger.services.audit import AuditSink, DatabaseAuditSink
from timeledger.services.context import OrgContext
from timeledger.services.day_boundary import get_zone

# We use auto_error=False so we can manually check for the cookie if header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),  # Read from HttpOnly Cookie
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode JWT from Header OR Cookie, look up user."""

    # Priority: Header > Cookie
    final_token = token
    if not final_token and access_token:
        final_token = access_token.removeprefix("Bearer ")

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not final_token:
        raise credentials_exc

    payload = decode_access_token(final_token)
    if payload is None:
        raise credentials_exc

    user_id: str | None = payload.get("sub")
    if user_id is None or not user_id.isdigit():
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if user is None or payload.get("org", user.org_id) != user.org_id:
        raise credentials_exc
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Only allow admin role to proceed."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


# ── Organization context ────────────────────────────────────────────
async def get_org_context(
    current_user: User = Depends(get_current_active_user),
    x_timezone: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> OrgContext:
    """Build the explicit OrgContext for the engine.

    The ``X-Timezone`` header wins; without it the organization default
    applies, never the server's local zone.
    """
    org = await db.get(Organization, current_user.org_id)
    if org is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    tz = get_zone(x_timezone, field="X-Timezone").key if x_timezone else org.timezone
    return OrgContext(
        org_id=org.id,
        actor_id=current_user.id,
        role=current_user.role,
        timezone=tz,
        min_daily_minutes=org.min_daily_minutes,
    )


async def get_admin_context(
    ctx: OrgContext = Depends(get_org_context),
) -> OrgContext:
    if not ctx.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return ctx


async def get_audit_sink(db: AsyncSession = Depends(get_db)) -> AuditSink:
    return DatabaseAuditSink(db)
