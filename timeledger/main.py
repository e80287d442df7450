"""
TimeLedger — Application entry point.

This is the **only** file that assembles the app.  The engine lives in
`services/`, the HTTP surface in `api/`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from timeledger.api.v1.api import api_router
from timeledger.api.v1.endpoints.auth import limiter
from timeledger.core.config import settings
from timeledger.core.exceptions import register_exception_handlers
from timeledger.core.security import get_password_hash
from timeledger.db.base import Base
from timeledger.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from timeledger.models.audit_log import AuditLog  # noqa: F401
from timeledger.models.entry import Entry  # noqa: F401
from timeledger.models.entry_correction import EntryCorrection  # noqa: F401
from timeledger.models.organization import Location, Organization  # noqa: F401
from timeledger.models.user import User
from timeledger.models.work_day import WorkDay  # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_defaults() -> None:
    """Create the first organization and its admin on an empty database."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL)
        )
        if result.scalar_one_or_none() is not None:
            return

        org = (
            await session.execute(select(Organization).order_by(Organization.id).limit(1))
        ).scalar_one_or_none()
        if org is None:
            org = Organization(
                name=settings.FIRST_ORG_NAME,
                timezone=settings.DEFAULT_TIMEZONE,
                min_daily_minutes=settings.DEFAULT_MIN_DAILY_MINUTES,
            )
            session.add(org)
            await session.flush()

        admin = User(
            org_id=org.id,
            email=settings.FIRST_ADMIN_EMAIL,
            hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
            full_name="System Administrator",
            role="admin",
        )
        session.add(admin)
        await session.commit()
        logger.info(
            "Default admin created: %s (password: <redacted>) in org '%s'",
            settings.FIRST_ADMIN_EMAIL,
            org.name,
        )


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    await seed_defaults()

    logger.info(
        "TimeLedger v%s started (lock backend: %s)", settings.VERSION, settings.LOCK_BACKEND
    )
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Time entry reconciliation engine",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting (login / refresh)
    application.state.limiter = limiter

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
