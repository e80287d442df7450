"""Explicit per-request organization context passed into every engine call."""

from __future__ import annotations

from dataclasses import dataclass

from timeledger.core.exceptions import PermissionDenied


@dataclass(frozen=True)
class OrgContext:
    org_id: int
    actor_id: int
    role: str
    timezone: str
    min_daily_minutes: int = 480

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def require_admin(self) -> None:
        if not self.is_admin:
            raise PermissionDenied("Admin privileges required")
