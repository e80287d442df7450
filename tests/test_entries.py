"""Tests for employee clock actions and WorkDay reads."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from conftest import auth_headers, make_user
from timeledger.models.entry import Entry
from timeledger.models.organization import Location, Organization


@pytest.mark.asyncio
async def test_clock_requires_auth(async_client: AsyncClient, location):
    """Clock actions without a token should return 401."""
    resp = await async_client.post(
        "/api/v1/entries", json={"type": "CLOCK_IN", "location_id": location.id}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_clock_in_creates_entry_and_work_day(async_client: AsyncClient, employee, location):
    """A clock-in is stored and linked to a freshly reconciled WorkDay."""
    resp = await async_client.post(
        "/api/v1/entries",
        json={"type": "CLOCK_IN", "location_id": location.id},
        headers=auth_headers(employee),
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["success"] is True
    assert data["bounced"] is False
    assert data["entry"]["type"] == "CLOCK_IN"
    assert data["entry"]["user_id"] == employee.id
    assert data["work_day_id"] is not None
    assert data["total_minutes"] == 0

    resp = await async_client.get("/api/v1/workdays", headers=auth_headers(employee))
    assert resp.status_code == 200
    (wd,) = resp.json()
    assert wd["id"] == data["work_day_id"]
    assert wd["location_id"] == location.id


@pytest.mark.asyncio
async def test_double_tap_is_bounced(async_client: AsyncClient, db_session, employee, location):
    """The same type twice inside the bounce window returns the first entry."""
    headers = auth_headers(employee)
    body = {"type": "CLOCK_IN", "location_id": location.id}

    first = await async_client.post("/api/v1/entries", json=body, headers=headers)
    second = await async_client.post("/api/v1/entries", json=body, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json()["bounced"] is True
    assert second.json()["entry"]["id"] == first.json()["entry"]["id"]
    count = await db_session.scalar(select(func.count()).select_from(Entry))
    assert count == 1


@pytest.mark.asyncio
async def test_different_type_is_not_bounced(async_client: AsyncClient, employee, location):
    headers = auth_headers(employee)
    await async_client.post(
        "/api/v1/entries", json={"type": "CLOCK_IN", "location_id": location.id}, headers=headers
    )
    resp = await async_client.post(
        "/api/v1/entries", json={"type": "BREAK_START", "location_id": location.id}, headers=headers
    )
    assert resp.json()["bounced"] is False

    resp = await async_client.get("/api/v1/entries", headers=headers)
    assert [e["type"] for e in resp.json()] == ["BREAK_START", "CLOCK_IN"]


@pytest.mark.asyncio
async def test_clock_at_foreign_location_is_not_found(
    async_client: AsyncClient, db_session, employee
):
    """A location owned by another organization looks missing."""
    other = Organization(name="Globex", timezone="UTC")
    db_session.add(other)
    await db_session.commit()
    foreign = Location(org_id=other.id, name="Elsewhere", is_active=True)
    db_session.add(foreign)
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/entries",
        json={"type": "CLOCK_IN", "location_id": foreign.id},
        headers=auth_headers(employee),
    )
    assert resp.status_code == 404
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_invalid_entry_type_is_rejected(async_client: AsyncClient, employee, location):
    resp = await async_client.post(
        "/api/v1/entries",
        json={"type": "LUNCH", "location_id": location.id},
        headers=auth_headers(employee),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_timezone_header_is_rejected(async_client: AsyncClient, employee, location):
    """An unrecognised X-Timezone is a 400, not a silent fallback."""
    resp = await async_client.post(
        "/api/v1/entries",
        json={"type": "CLOCK_IN", "location_id": location.id},
        headers=auth_headers(employee, **{"X-Timezone": "Not/AZone"}),
    )
    assert resp.status_code == 400
    assert "X-Timezone" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_employee_cannot_read_other_work_days(
    async_client: AsyncClient, db_session, org, employee
):
    colleague = await make_user(db_session, org.id, "colleague@acme.test")
    resp = await async_client.get(
        f"/api/v1/workdays?user_id={colleague.id}", headers=auth_headers(employee)
    )
    assert resp.status_code == 404
