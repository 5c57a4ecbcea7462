"""Tests for /admin/activity/cleanup: stats, policy management, cleanup runs and the emergency purge."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from carshare_activity.application.repositories import ActivityQuery
from carshare_activity.domain.models.activity import ActivitySeverity

URL = "/admin/activity/cleanup"


@pytest.mark.asyncio
async def test_cleanup_requires_manage_retention(async_client: AsyncClient, user_headers):
    assert (await async_client.get(URL)).status_code == 401
    assert (await async_client.get(URL, headers=user_headers)).status_code == 403


@pytest.mark.asyncio
async def test_stats_by_age_and_severity(
    async_client: AsyncClient, admin_headers, activity_repo, make_record
):
    await activity_repo.save(make_record())
    await activity_repo.save(make_record(age=timedelta(days=3), severity=ActivitySeverity.DEBUG))
    await activity_repo.save(make_record(age=timedelta(days=120)))

    r = await async_client.get(URL, params={"action": "stats"}, headers=admin_headers)

    assert r.status_code == 200
    stats = r.json()["stats"]
    assert stats["totalRecords"] == 3
    by_age = {b["ageRange"]: b["count"] for b in stats["recordsByAge"]}
    assert by_age["Last 24 hours"] == 1
    assert by_age["Last 7 days"] == 1
    assert by_age["Older than 90 days"] == 1
    assert {s["severity"]: s["count"] for s in stats["recordsBySeverity"]} == {"INFO": 2, "DEBUG": 1}


@pytest.mark.asyncio
async def test_policies_listed_in_execution_order(async_client: AsyncClient, admin_headers):
    r = await async_client.get(URL, params={"action": "policies"}, headers=admin_headers)
    policies = r.json()["policies"]
    assert policies[0]["name"] == "debug_logs_cleanup"
    assert policies[0]["conditions"]["severity"] == ["DEBUG"]
    assert policies[-1]["name"] == "general_cleanup"
    assert policies[-1]["specificity"] == 0


@pytest.mark.asyncio
async def test_dry_run_counts_without_deleting(
    async_client: AsyncClient, admin_headers, activity_repo, make_record
):
    await activity_repo.save(make_record(severity=ActivitySeverity.DEBUG, age=timedelta(days=10)))
    await activity_repo.save(make_record(severity=ActivitySeverity.INFO, age=timedelta(days=10)))

    r = await async_client.post(URL, json={"action": "cleanup", "dryRun": True}, headers=admin_headers)

    assert r.status_code == 200
    data = r.json()
    assert data["message"] == "Dry run completed"
    assert data["dryRun"] is True
    assert data["stats"]["processed"] == 1
    assert data["stats"]["deleted"] == 0
    assert await activity_repo.count(ActivityQuery(before=_days_ago(1))) == 2


@pytest.mark.asyncio
async def test_cleanup_deletes_only_expired_records(
    async_client: AsyncClient, admin_headers, activity_repo, make_record
):
    await activity_repo.save(make_record(severity=ActivitySeverity.DEBUG, age=timedelta(days=10)))
    await activity_repo.save(make_record(severity=ActivitySeverity.INFO, age=timedelta(days=10)))

    r = await async_client.post(URL, json={"action": "cleanup"}, headers=admin_headers)

    data = r.json()
    assert data["message"] == "Cleanup completed"
    stats = data["stats"]
    assert stats["deleted"] == 1
    assert stats["errors"] == []
    assert stats["spaceSavedMB"] >= 0
    [survivor] = await activity_repo.find(ActivityQuery(before=_days_ago(1)))
    assert survivor.severity is ActivitySeverity.INFO


@pytest.mark.asyncio
async def test_add_policy_then_duplicate_conflicts(async_client: AsyncClient, admin_headers, runtime):
    policy = {
        "name": "guest_page_views",
        "description": "Short-lived page views",
        "retentionDays": 3,
        "conditions": {"actions": ["read"], "resources": ["page"]},
    }

    r = await async_client.post(URL, json={"action": "add_policy", "policy": policy}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["policy"]["conditions"]["actions"] == ["READ"]
    assert runtime.retention.get_policies()[0].name == "guest_page_views"

    r = await async_client.post(URL, json={"action": "add_policy", "policy": policy}, headers=admin_headers)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_add_policy_validation(async_client: AsyncClient, admin_headers):
    r = await async_client.post(URL, json={"action": "add_policy"}, headers=admin_headers)
    assert r.status_code == 400

    bad_severity = {"name": "x", "retentionDays": 5, "conditions": {"severity": ["LOUD"]}}
    r = await async_client.post(
        URL, json={"action": "add_policy", "policy": bad_severity}, headers=admin_headers
    )
    assert r.status_code == 422

    r = await async_client.post(
        URL,
        json={"action": "add_policy", "policy": {"name": "x", "retentionDays": 0}},
        headers=admin_headers,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_remove_policy(async_client: AsyncClient, admin_headers, runtime):
    r = await async_client.post(
        URL, json={"action": "remove_policy", "policyName": "general_cleanup"}, headers=admin_headers
    )
    assert r.status_code == 200
    assert "general_cleanup" not in [p.name for p in runtime.retention.get_policies()]

    r = await async_client.post(
        URL, json={"action": "remove_policy", "policyName": "general_cleanup"}, headers=admin_headers
    )
    assert r.status_code == 404

    r = await async_client.post(URL, json={"action": "remove_policy"}, headers=admin_headers)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_emergency_purge_needs_super_admin(async_client: AsyncClient, admin_headers):
    r = await async_client.request(
        "DELETE",
        URL,
        json={"olderThanDays": 1, "confirm": "DELETE_ALL_DATA"},
        headers=admin_headers,
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_emergency_purge_requires_confirmation(async_client: AsyncClient, super_admin_headers):
    r = await async_client.request(
        "DELETE", URL, json={"olderThanDays": 1, "confirm": "yes"}, headers=super_admin_headers
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_emergency_purge_deletes_old_records(
    async_client: AsyncClient, super_admin_headers, activity_repo, make_record
):
    await activity_repo.save(make_record(age=timedelta(days=5), severity=ActivitySeverity.ERROR))
    await activity_repo.save(make_record())

    r = await async_client.request(
        "DELETE",
        URL,
        json={"olderThanDays": 2, "confirm": "DELETE_ALL_DATA"},
        headers=super_admin_headers,
    )

    assert r.status_code == 200
    assert r.json()["deleted"] == {"activities": 1, "events": 0, "metrics": 0}


def _days_ago(days):
    return datetime.now(timezone.utc) - timedelta(days=days)
