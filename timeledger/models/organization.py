"""
Organization & Location models — tenancy boundary for every engine call.

The organization supplies the default timezone used to decide which
local calendar day an entry belongs to, and the daily policy minimum.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, Float, ForeignKey, Integer,
                        String)
from sqlalchemy.orm import relationship

from timeledger.db.base import Base


class Organization(Base):
    __tablename__ = "organizations"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    timezone: str = Column(  # type: ignore[assignment]
        String(64), nullable=False, default="America/New_York"
    )  # IANA zone key
    min_daily_minutes: int = Column(Integer, nullable=False, default=480)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    locations = relationship("Location", back_populates="organization")


class Location(Base):
    __tablename__ = "locations"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    org_id: int = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    code: str | None = Column(String(32), nullable=True)  # type: ignore[assignment]
    # Geofence metadata; distance checks live outside the engine
    latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    radius_meters: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="1")  # type: ignore[assignment]

    organization = relationship("Organization", back_populates="locations")
