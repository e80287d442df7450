"""Pydantic schemas for admin corrections — one tagged union discriminated by ``kind``."""

from __future__ import annotations

import re
from typing import Annotated, Literal, Union

from pydantic import (AfterValidator, AwareDatetime, BaseModel, Field,
                      RootModel, field_validator, model_validator)

from timeledger.core.config import settings
from timeledger.models.entry import EntryType

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


class _CorrectionBase(BaseModel):
    reason: str
    request_id: str | None = None  # idempotency key for safe retries

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Reason is required")
        if len(v) > 900:
            raise ValueError("Reason must not exceed 900 characters")
        return v

    @field_validator("request_id")
    @classmethod
    def _request_id(cls, v: str | None) -> str | None:
        if v is not None and not _REQUEST_ID_RE.match(v):
            raise ValueError("request_id must be 1-64 chars of letters, digits, '.', '_', ':' or '-'")
        return v


def _check_entry_ids(v: list[int]) -> list[int]:
    if not v:
        raise ValueError("At least one entry id is required")
    if len(v) > settings.MAX_BULK_ENTRIES:
        raise ValueError(f"Maximum {settings.MAX_BULK_ENTRIES} entries per request")
    return list(dict.fromkeys(v))


EntryIds = Annotated[list[int], AfterValidator(_check_entry_ids)]


class CreateEntryCorrection(_CorrectionBase):
    kind: Literal["create"] = "create"
    user_id: int
    location_id: int
    type: EntryType
    timestamp: AwareDatetime
    notes: str | None = Field(default=None, max_length=500)


class EditEntryCorrection(_CorrectionBase):
    kind: Literal["edit"] = "edit"
    entry_id: int
    timestamp: AwareDatetime | None = None
    type: EntryType | None = None
    location_id: int | None = None
    notes: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _has_change(self) -> EditEntryCorrection:
        if not self.model_fields_set & {"timestamp", "type", "location_id", "notes"}:
            raise ValueError("Nothing to change: give timestamp, type, location_id or notes")
        return self


class BulkShiftCorrection(_CorrectionBase):
    kind: Literal["bulk_shift"] = "bulk_shift"
    entry_ids: EntryIds
    shift_minutes: int

    @field_validator("shift_minutes")
    @classmethod
    def _shift(cls, v: int) -> int:
        if v == 0:
            raise ValueError("shift_minutes must not be zero")
        if abs(v) > 7 * 24 * 60:
            raise ValueError("shift_minutes must be within one week")
        return v


class DeleteEntriesCorrection(_CorrectionBase):
    kind: Literal["delete"] = "delete"
    entry_ids: EntryIds


CorrectionRequest = Annotated[
    Union[
        CreateEntryCorrection,
        EditEntryCorrection,
        BulkShiftCorrection,
        DeleteEntriesCorrection,
    ],
    Field(discriminator="kind"),
]


class CorrectionEnvelope(RootModel[CorrectionRequest]):
    """Request body wrapper so the tagged union validates as one model."""
