"""
EntryCorrection model — immutable record of an administrative change.

``entry_id`` is deliberately not a foreign key: the row outlives the
entry it describes and acts as its tombstone after a delete. ``user_id``
and ``location_id`` record where the entry stood before the change, so
the WorkDay it belonged to can still be found once the entry is gone.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, ForeignKey, Integer, String,
                        UniqueConstraint)

from timeledger.db.base import Base


class EntryCorrection(Base):
    __tablename__ = "entry_corrections"
    __table_args__ = (
        UniqueConstraint("entry_id", "request_id", name="uq_correction_entry_request"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    entry_id: int = Column(Integer, nullable=False, index=True)  # type: ignore[assignment]
    corrected_by: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    user_id: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    location_id: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    old_timestamp: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    new_timestamp: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    old_type: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    new_type: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    reason: str = Column(String(1000), nullable=False)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(20), nullable=False, default="APPROVED", server_default="APPROVED"
    )
    request_id: str | None = Column(String(64), nullable=True, index=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
