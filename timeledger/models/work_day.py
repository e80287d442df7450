"""
WorkDay model — derived daily aggregate per (user, location, local date).

Every column is recomputed from the entries of its key; nothing here
is authoritative.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Integer, String,
                        UniqueConstraint)

from timeledger.db.base import Base


class WorkDay(Base):
    __tablename__ = "work_days"
    __table_args__ = (
        UniqueConstraint("user_id", "location_id", "date", name="uq_work_day_user_location_date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    location_id: int = Column(Integer, ForeignKey("locations.id"), nullable=False)  # type: ignore[assignment]
    date: str = Column(String(10), nullable=False, index=True)  # type: ignore[assignment]  # YYYY-MM-DD, local
    total_minutes: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    break_minutes: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    meets_policy: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    first_clock_in: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    last_clock_out: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )  # last reconcile that changed the row
