"""Pydantic schemas for WorkDay aggregates and the reconcile trigger."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, field_validator


class WorkDayRead(BaseModel):
    id: int
    user_id: int
    location_id: int
    date: str
    total_minutes: int
    break_minutes: int
    meets_policy: bool
    first_clock_in: datetime | None
    last_clock_out: datetime | None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReconcileRequest(BaseModel):
    user_id: int
    date: str  # YYYY-MM-DD, local to the timezone below
    location_id: int
    timezone: str | None = None  # falls back to X-Timezone, then the org default

    @field_validator("date")
    @classmethod
    def _date(cls, v: str) -> str:
        try:
            return date.fromisoformat(v.strip()).isoformat()
        except ValueError as exc:
            raise ValueError("Date must be YYYY-MM-DD") from exc


class ReconcileResponse(BaseModel):
    success: bool
    user_id: int
    date: str
    location_id: int
    timezone: str
    entry_count: int
    work_day: WorkDayRead | None
    warnings: list[str]
