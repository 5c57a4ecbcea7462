"""Tests for GET /activity/analytics: own-data scoping for users, system-wide view for admins."""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from carshare_activity.domain.models.activity import ActivityAction, ActivitySeverity


@pytest.fixture
async def seeded(activity_repo, make_record):
    await activity_repo.save(make_record(action=ActivityAction.BOOK, resource="booking"))
    await activity_repo.save(make_record(age=timedelta(minutes=1)))
    await activity_repo.save(make_record(actor_id="u2", severity=ActivitySeverity.ERROR))
    await activity_repo.save(make_record(actor_id="u2", age=timedelta(days=3)))


@pytest.mark.asyncio
async def test_analytics_requires_authentication(async_client: AsyncClient):
    r = await async_client.get("/activity/analytics")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_user_sees_only_own_activity(async_client: AsyncClient, user_headers, seeded):
    r = await async_client.get("/activity/analytics?userId=u2", headers=user_headers)
    assert r.status_code == 200
    data = r.json()
    assert data["systemWide"] is False
    assert data["userId"] == "u1"
    assert data["requestedBy"] == "u1"
    assert data["totalActivities"] == 2
    assert {a["action"]: a["count"] for a in data["activitiesByAction"]} == {"BOOK": 1, "READ": 1}
    assert all(a["userId"] == "u1" for a in data["recentActivities"])


@pytest.mark.asyncio
async def test_admin_sees_system_wide_activity(async_client: AsyncClient, admin_headers, seeded):
    r = await async_client.get("/activity/analytics", headers=admin_headers)
    data = r.json()
    assert data["systemWide"] is True
    assert data["userId"] is None
    assert data["totalActivities"] == 4
    assert data["activitiesByAction"][0] == {"action": "READ", "count": 3}
    assert {s["severity"]: s["count"] for s in data["activitiesBySeverity"]} == {"INFO": 3, "ERROR": 1}


@pytest.mark.asyncio
async def test_admin_can_narrow_to_one_user_and_date_range(
    async_client: AsyncClient, admin_headers, seeded
):
    r = await async_client.get(
        "/activity/analytics",
        params={"userId": "u2", "startDate": "2000-01-01T00:00:00Z"},
        headers=admin_headers,
    )
    data = r.json()
    assert data["systemWide"] is False
    assert data["userId"] == "u2"
    assert data["totalActivities"] == 2
    assert data["requestedBy"] == "admin-1"
