"""Pydantic schemas for organization settings and locations."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from timeledger.core.exceptions import ValidationFailed
from timeledger.services.day_boundary import get_zone


class OrganizationRead(BaseModel):
    id: int
    name: str
    timezone: str
    min_daily_minutes: int

    model_config = {"from_attributes": True}


class OrganizationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    timezone: str | None = None
    min_daily_minutes: int | None = Field(default=None, ge=0, le=24 * 60)

    @field_validator("timezone")
    @classmethod
    def _timezone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            return get_zone(v).key
        except ValidationFailed as exc:
            raise ValueError(exc.detail) from exc


class LocationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    code: str | None = Field(default=None, max_length=32)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    radius_meters: float | None = Field(default=None, gt=0)


class LocationRead(BaseModel):
    id: int
    name: str
    code: str | None
    latitude: float | None
    longitude: float | None
    radius_meters: float | None
    is_active: bool

    model_config = {"from_attributes": True}
