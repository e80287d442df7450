"""
Entry model — one raw clock event.

``timestamp_server`` is authoritative and only changes through the
correction ledger. ``work_day_id`` is a back-reference maintained by
reconciliation, never by hand.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, Float, ForeignKey, Index, Integer,
                        String)

from timeledger.db.base import Base


class EntryType(str, enum.Enum):
    CLOCK_IN = "CLOCK_IN"
    CLOCK_OUT = "CLOCK_OUT"
    BREAK_START = "BREAK_START"
    BREAK_END = "BREAK_END"


class Entry(Base):
    __tablename__ = "entries"
    __table_args__ = (
        Index("ix_entries_user_location_ts", "user_id", "location_id", "timestamp_server"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    type: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    # CLOCK_IN | CLOCK_OUT | BREAK_START | BREAK_END
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    location_id: int = Column(Integer, ForeignKey("locations.id"), nullable=False)  # type: ignore[assignment]
    timestamp_client: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    timestamp_server: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    gps_latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    gps_longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    gps_accuracy: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    notes: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    work_day_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("work_days.id", ondelete="SET NULL"), nullable=True, index=True
    )
