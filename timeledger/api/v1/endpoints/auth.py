"""
Auth endpoints — login, token refresh and organization membership.

Tokens are scoped to the user's organization through the ``org`` claim;
a refresh re-reads the user, so a deactivated member or a member moved
to another organization stops getting tokens.
"""

from __future__ import annotations

import logging

from fastapi import (APIRouter, Cookie, Depends, HTTPException, Request,
                     Response, status)
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.api.v1.deps import (get_audit_sink, get_current_active_user,
                                    get_db, require_admin)
from timeledger.core.config import settings
from timeledger.core.security import (create_access_token, create_refresh_token,
                                      decode_refresh_token, get_password_hash,
                                      verify_password)
from timeledger.models.user import User
from timeledger.schemas.token import LogoutResponse, RefreshRequest, Token
from timeledger.schemas.user import UserCreate, UserRead, UserUpdate
from timeledger.services.audit import AuditSink

# Rate limiter — keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

_COOKIE_LIFETIMES = {
    "access_token": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    "refresh_token": settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
}


def _issue_tokens(response: Response, user: User) -> Token:
    """Mint an org-scoped token pair and mirror it into HttpOnly cookies."""
    token = Token(
        access_token=create_access_token(user.id, user.org_id),
        refresh_token=create_refresh_token(user.id, user.org_id),
    )
    values = {
        "access_token": f"Bearer {token.access_token}",
        "refresh_token": token.refresh_token,
    }
    for name, value in values.items():
        response.set_cookie(
            key=name,
            value=value,
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite="lax",
            max_age=_COOKIE_LIFETIMES[name],
        )
    return token


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """OAuth2 password flow; the username is the member's email."""
    user = await db.scalar(select(User).where(User.email == form_data.username.lower().strip()))
    if user is None or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed login for %s", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
    return _issue_tokens(response, user)


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh_access_token_endpoint(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Swap a refresh token (body first, then cookie) for a new pair."""
    token_str = body.refresh_token if body and body.refresh_token else refresh_token_cookie
    payload = decode_refresh_token(token_str) if token_str else None
    if payload is None or not str(payload.get("sub", "")).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    user = await db.get(User, int(payload["sub"]))
    if user is None or not user.is_active or payload.get("org", user.org_id) != user.org_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return _issue_tokens(response, user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear auth cookies and end the session."""
    for name in _COOKIE_LIFETIMES:
        response.delete_cookie(name)
    return LogoutResponse(message="Logged out")


@router.get("/me", response_model=UserRead)
async def read_current_user(
    current_user: User = Depends(get_current_active_user),
) -> User:
    return current_user


# ── Organization members (admin-only) ──────────────────────────────
@router.get("/users", response_model=list[UserRead])
async def list_users(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> list[User]:
    """Members of the admin's organization, by email."""
    query = select(User).where(User.org_id == admin.org_id).order_by(User.email)
    if not include_inactive:
        query = query.where(User.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: AuditSink = Depends(get_audit_sink),
) -> User:
    """Add a member to the admin's own organization."""
    if await db.scalar(select(User.id).where(User.email == body.email)) is not None:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        org_id=admin.org_id,
        email=body.email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name,
        role=body.role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Admin %d added %s (%s) to org %d", admin.id, user.email, user.role, admin.org_id)
    await audit.record(
        admin.org_id,
        admin.id,
        "USER_CREATED",
        "User",
        user.id,
        {"email": user.email, "role": user.role},
    )
    return user


@router.patch("/users/{user_id}", response_model=UserRead)
async def update_user(
    user_id: int,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: AuditSink = Depends(get_audit_sink),
) -> User:
    """Change a member's name, role or active flag. Entries are kept."""
    user = await db.scalar(select(User).where(User.id == user_id, User.org_id == admin.org_id))
    if user is None:
        raise HTTPException(status_code=404, detail="User not found in organization")
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    demoted = changes.get("role", user.role) != "admin" or not changes.get("is_active", True)
    if user.id == admin.id and demoted:
        raise HTTPException(status_code=400, detail="Admins cannot demote or deactivate themselves")

    for field, value in changes.items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    await audit.record(admin.org_id, admin.id, "USER_UPDATED", "User", user.id, changes)
    return user
