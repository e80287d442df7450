"""
Audit sink — append-only log of privileged actions.

Fire-and-forget from the engine's point of view: a failure to write the
audit row is logged and swallowed, never propagated into the operation
being reported.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    async def record(
        self,
        org_id: int,
        acting_user_id: int,
        action: str,
        entity_type: str,
        entity_id: Any,
        details: dict[str, Any] | None = None,
    ) -> None: ...


class DatabaseAuditSink:
    """
    Writes ``AuditLog`` rows in a session of its own, bound to the same
    engine as the request's session. A failed write rolls back only that
    session, so objects the request already loaded stay usable.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._bind = db.bind

    async def record(
        self,
        org_id: int,
        acting_user_id: int,
        action: str,
        entity_type: str,
        entity_id: Any,
        details: dict[str, Any] | None = None,
    ) -> None:
        async with AsyncSession(bind=self._bind, expire_on_commit=False) as session:
            try:
                session.add(
                    AuditLog(
                        org_id=org_id,
                        user_id=acting_user_id,
                        action=action,
                        entity_type=entity_type,
                        entity_id=None if entity_id is None else str(entity_id),
                        details=details,
                    )
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Failed to write audit log entry %s: %s", action, exc)
