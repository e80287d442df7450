"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from timeledger.api.v1.endpoints import (auth, corrections, entries,
                                         organization, system, work_days)

api_router = APIRouter()

# Auth (login, refresh, user management)
api_router.include_router(auth.router)

# Organization settings and locations
api_router.include_router(organization.router)

# Clock actions and own history
api_router.include_router(entries.router)

# Admin review and corrections
api_router.include_router(corrections.router)

# WorkDay reconcile trigger, reads and export
api_router.include_router(work_days.router)

# Health and audit log
api_router.include_router(system.router)
