"""Pydantic schemas for the audit log."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class AuditLogRead(BaseModel):
    id: int
    user_id: int
    action: str
    entity_type: str
    entity_id: str | None
    details: dict[str, Any] | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    db: bool
    redis: bool
