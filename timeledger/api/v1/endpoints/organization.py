"""
Organization settings & locations — admin-configurable inputs to reconciliation.

The organization timezone is the fallback for requests without an
``X-Timezone`` header; ``min_daily_minutes`` drives ``meets_policy``.
Changing either does not rewrite existing WorkDays until they are
reconciled again.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeledger.api.v1.deps import (get_audit_sink, get_current_active_user,
                                   get_db, require_admin)
from timeledger.models.organization import Location, Organization
from timeledger.models.user import User
from timeledger.schemas.organization import (LocationCreate, LocationRead,
                                             OrganizationRead,
                                             OrganizationUpdate)
from timeledger.services.audit import AuditSink

router = APIRouter(tags=["organization"])
logger = logging.getLogger(__name__)


async def _get_org(db: AsyncSession, org_id: int) -> Organization:
    org = await db.get(Organization, org_id)
    if org is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


@router.get("/organization", response_model=OrganizationRead)
async def get_organization(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> Organization:
    """Get the caller's organization settings."""
    return await _get_org(db, user.org_id)


@router.put("/organization", response_model=OrganizationRead)
async def update_organization(
    body: OrganizationUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    audit: AuditSink = Depends(get_audit_sink),
) -> Organization:
    """Update name, default timezone or daily policy minimum."""
    org = await _get_org(db, admin.org_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    for field, value in changes.items():
        setattr(org, field, value)

    await db.commit()
    await db.refresh(org)
    logger.info("Organization %d settings updated: %s", org.id, changes)
    await audit.record(org.id, admin.id, "ORG_SETTINGS_UPDATED", "Organization", org.id, changes)
    return org


@router.get("/locations", response_model=list[LocationRead])
async def list_locations(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> list[Location]:
    result = await db.execute(
        select(Location)
        .where(Location.org_id == user.org_id, Location.is_active.is_(True))
        .order_by(Location.name)
    )
    return list(result.scalars().all())


@router.post("/locations", response_model=LocationRead, status_code=201)
async def create_location(
    body: LocationCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Location:
    location = Location(org_id=admin.org_id, **body.model_dump())
    db.add(location)
    await db.commit()
    await db.refresh(location)
    logger.info("Created location %s (%d) in org %d", location.name, location.id, admin.org_id)
    return location
