"""ActivityTracker: persist-then-publish, config filtering, sanitizing, failure handling, reads."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from carshare_activity.application.activity_tracker import (
    MASKED,
    ActivityTracker,
    TrackingConfig,
    action_for_method,
    severity_for_status,
)
from carshare_activity.application.event_emitter import EventEmitter, EventListener
from carshare_activity.application.event_factory import create_context
from carshare_activity.application.exceptions import TrackingFailureError
from carshare_activity.application.repositories import ActivityQuery
from carshare_activity.domain.models.activity import ActivityAction, ActivitySeverity
from carshare_activity.observability.metrics import MetricsCollector


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def published(emitter):
    events = []

    async def capture(event):
        events.append(event)

    emitter.on("*", EventListener(name="capture", handler=capture))
    return events


@pytest.fixture
def tracker(activity_repo, emitter):
    return ActivityTracker(activity_repo, emitter, metrics=MetricsCollector())


@pytest.mark.asyncio
async def test_record_activity_persists_then_publishes(tracker, activity_repo, emitter, published):
    ctx = create_context(actor_id="u1")
    record = await tracker.record_activity(
        ActivityAction.BOOK, "booking", ctx, resource_id="b1"
    )
    await emitter.drain()

    assert record.severity is ActivitySeverity.INFO
    assert record.description == "Booked booking"
    stored = await activity_repo.find(ActivityQuery(actor_id="u1"))
    assert [r.resource_id for r in stored] == ["b1"]

    assert len(published) == 1
    event = published[0]
    assert str(event.type) == "user.activity"
    assert event.get("recordId") == record.id
    assert event.get("action") == "BOOK"
    assert event.correlation_id == ctx.correlation_id


@pytest.mark.asyncio
async def test_record_activity_failure_raises_and_publishes_nothing(emitter, published):
    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=RuntimeError("db down"))
    tracker = ActivityTracker(repo, emitter)

    with pytest.raises(TrackingFailureError):
        await tracker.record_activity(ActivityAction.BOOK, "booking", create_context())
    await emitter.drain()
    assert published == []


@pytest.mark.asyncio
async def test_track_activity_failure_reports_system_error(emitter, published):
    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=RuntimeError("db down"))
    tracker = ActivityTracker(repo, emitter)

    result = await tracker.track_activity(ActivityAction.BOOK, "booking", create_context())
    await emitter.drain()

    assert result is None
    assert [str(e.type) for e in published] == ["system.error"]
    assert published[0].get("errorDetails")["code"] == "ACTIVITY_TRACKING_ERROR"
    assert published[0].get("component") == "activity-tracker"


@pytest.mark.asyncio
async def test_disabled_tracking_records_nothing(activity_repo, emitter, published):
    tracker = ActivityTracker(activity_repo, emitter, config=TrackingConfig(enabled=False))
    assert await tracker.record_activity(ActivityAction.BOOK, "booking", create_context()) is None
    await emitter.drain()
    assert published == []
    assert await activity_repo.count(ActivityQuery()) == 0


def test_should_track_levels_and_exclusions(activity_repo, emitter):
    tracker = ActivityTracker(activity_repo, emitter)
    assert tracker.should_track(ActivityAction.READ, "car")

    tracker.configure(level="minimal")
    assert tracker.should_track(ActivityAction.LOGIN, "auth")
    assert not tracker.should_track(ActivityAction.READ, "car")

    tracker.configure(level="standard")
    assert tracker.should_track(ActivityAction.UPDATE, "car")
    assert not tracker.should_track(ActivityAction.SEARCH, "car")

    tracker.configure(
        level="detailed",
        exclude_actions=frozenset({ActivityAction.EXPORT}),
        exclude_resources=frozenset({"internal"}),
    )
    assert not tracker.should_track(ActivityAction.EXPORT, "car")
    assert not tracker.should_track(ActivityAction.READ, "internal")
    assert not tracker.should_track(ActivityAction.READ, "api", endpoint="/health/live")


def test_sanitize_masks_nested_sensitive_keys(activity_repo, emitter):
    tracker = ActivityTracker(activity_repo, emitter)
    data = {"email": "a@b.c", "password": "x", "nested": {"apiKey": "k", "items": [{"token": "t"}]}}
    clean = tracker.sanitize(data)
    assert clean["email"] == "a@b.c"
    assert clean["password"] == MASKED
    assert clean["nested"]["apiKey"] == MASKED
    assert clean["nested"]["items"][0]["token"] == MASKED


def test_sanitize_truncates_large_payloads(activity_repo, emitter):
    tracker = ActivityTracker(activity_repo, emitter, config=TrackingConfig(max_payload_bytes=300))
    clean = tracker.sanitize({"blob": "x" * 1000})
    assert clean["truncated"] is True
    assert clean["originalSize"] > 300


def test_method_and_status_mapping():
    assert action_for_method("post") is ActivityAction.CREATE
    assert action_for_method("GET") is ActivityAction.READ
    assert action_for_method("OPTIONS") is ActivityAction.CUSTOM
    assert severity_for_status(None) is ActivitySeverity.INFO
    assert severity_for_status(404) is ActivitySeverity.WARN
    assert severity_for_status(503) is ActivitySeverity.ERROR


@pytest.mark.asyncio
async def test_track_api_request_masks_request_body(tracker, activity_repo):
    ctx = create_context(actor_id="u1")
    record = await tracker.track_api_request(
        "POST",
        "/bookings",
        ctx,
        request_data={"carId": "c1", "password": "secret"},
        status_code=201,
        duration_ms=12,
    )
    assert record.action is ActivityAction.CREATE
    assert record.resource == "api"
    assert record.endpoint == "/bookings"
    assert record.request_data == {"carId": "c1", "password": MASKED}
    assert "api-request" in record.tags


@pytest.mark.asyncio
async def test_track_api_request_skips_excluded_endpoint(tracker, activity_repo):
    assert await tracker.track_api_request("GET", "/health", create_context()) is None
    assert await activity_repo.count(ActivityQuery()) == 0


@pytest.mark.asyncio
async def test_track_page_view_skipped_at_minimal_level(tracker):
    tracker.configure(level="minimal")
    assert await tracker.track_page_view("/cars", create_context()) is None


@pytest.mark.asyncio
async def test_track_auth_failure_is_warn_and_publishes(tracker, emitter, published):
    ctx = create_context(actor_id="u1")
    record = await tracker.track_auth("login", ctx, email="u1@example.com", success=False)
    await emitter.drain()

    assert record.action is ActivityAction.LOGIN
    assert record.severity is ActivitySeverity.WARN
    assert record.description == "Failed login: unknown reason"
    assert [str(e.type) for e in published] == ["auth.login"]


@pytest.mark.asyncio
async def test_security_and_admin_events_publish_only(tracker, activity_repo, emitter, published):
    ctx = create_context(actor_id="admin-1")
    await tracker.track_security(
        "suspicious_activity", ActivitySeverity.CRITICAL, ctx, details={"token": "t"}
    )
    await tracker.track_admin("user.promoted", "admin-1", ActivityAction.USER_PROMOTE, ctx)
    await emitter.drain()

    assert [str(e.type) for e in published] == ["security.suspicious_activity", "admin.user.promoted"]
    assert published[0].get("details") == {"token": MASKED}
    assert await activity_repo.count(ActivityQuery()) == 0


@pytest.mark.asyncio
async def test_history_is_paginated_and_capped(tracker, activity_repo, make_record):
    for i in range(5):
        await activity_repo.save(make_record(age=timedelta(minutes=i)))
    await activity_repo.save(make_record(actor_id="other"))

    page = await tracker.get_user_activity_history("u1", limit=2, offset=0)
    assert page.total == 5
    assert len(page.activities) == 2
    assert page.has_more is True

    last = await tracker.get_user_activity_history("u1", limit=1000, offset=4)
    assert len(last.activities) == 1
    assert last.has_more is False


@pytest.mark.asyncio
async def test_analytics_counts_by_dimension(tracker, activity_repo, make_record):
    await activity_repo.save(make_record(action=ActivityAction.BOOK, resource="booking"))
    await activity_repo.save(make_record(action=ActivityAction.BOOK, resource="booking"))
    await activity_repo.save(make_record(action=ActivityAction.READ, severity=ActivitySeverity.DEBUG))

    analytics = await tracker.get_activity_analytics()
    assert analytics.total_activities == 3
    assert analytics.by_action == {"BOOK": 2, "READ": 1}
    assert list(analytics.by_resource) == ["booking", "car"]
    assert analytics.by_severity == {"INFO": 2, "DEBUG": 1}
    assert len(analytics.recent_activities) == 3
