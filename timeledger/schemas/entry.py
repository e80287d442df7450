"""Pydantic schemas for entries, clock actions and correction history."""

from __future__ import annotations

from datetime import datetime

from pydantic import AwareDatetime, BaseModel, Field, field_validator

from timeledger.models.entry import EntryType


# ── Clock action (employee) ─────────────────────────────────────────
class ClockRequest(BaseModel):
    type: EntryType
    location_id: int
    timestamp_client: AwareDatetime | None = None
    gps_latitude: float | None = Field(default=None, ge=-90, le=90)
    gps_longitude: float | None = Field(default=None, ge=-180, le=180)
    gps_accuracy: float | None = Field(default=None, ge=0)
    notes: str | None = None

    @field_validator("notes")
    @classmethod
    def _notes(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if len(v) > 500:
            raise ValueError("Notes must not exceed 500 characters")
        return v or None


# ── Entry ───────────────────────────────────────────────────────────
class EntryRead(BaseModel):
    id: int
    type: str
    user_id: int
    location_id: int
    timestamp_client: datetime | None
    timestamp_server: datetime
    gps_latitude: float | None = None
    gps_longitude: float | None = None
    gps_accuracy: float | None = None
    notes: str | None = None
    work_day_id: int | None = None

    model_config = {"from_attributes": True}


class ClockResponse(BaseModel):
    success: bool
    entry: EntryRead
    bounced: bool = False  # duplicate tap inside the bounce window
    work_day_id: int | None = None
    total_minutes: int | None = None


# ── Correction history ──────────────────────────────────────────────
class EntryCorrectionRead(BaseModel):
    id: int
    entry_id: int
    corrected_by: int
    user_id: int | None = None
    location_id: int | None = None
    old_timestamp: datetime | None
    new_timestamp: datetime | None
    old_type: str | None
    new_type: str | None
    reason: str
    status: str
    request_id: str | None = None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class AdminEntriesResponse(BaseModel):
    user_id: int
    email: str
    full_name: str | None
    entries: list[EntryRead]
    corrections: list[EntryCorrectionRead]


# ── Correction outcome ──────────────────────────────────────────────
class WorkDayKeyRead(BaseModel):
    user_id: int
    date: str
    location_id: int


class CorrectionResponse(BaseModel):
    success: bool
    kind: str
    applied: list[int]
    skipped: list[int]
    reconciled: list[WorkDayKeyRead]
    failed: list[WorkDayKeyRead]
    entry: EntryRead | None = None
