"""DbEventLogRepository: terminal-status aging and upsert-by-id."""

from datetime import datetime, timedelta, timezone

import pytest

from carshare_activity.domain.models.activity import EventCategory, EventLogEntry, EventStatus


def _entry(entry_id, status, age_days, **fields):
    moment = datetime.now(timezone.utc) - timedelta(days=age_days)
    return EventLogEntry(
        id=entry_id,
        event_type="auth.login",
        category=EventCategory.USER_ACTION,
        status=status,
        timestamp=moment,
        processed_at=moment if status is EventStatus.COMPLETED else None,
        **fields,
    )


@pytest.mark.asyncio
async def test_terminal_entries_age_out(event_log_repo):
    await event_log_repo.save(_entry("done-old", EventStatus.COMPLETED, 5))
    await event_log_repo.save(_entry("done-new", EventStatus.COMPLETED, 0))
    await event_log_repo.save(_entry("pending-old", EventStatus.PENDING, 5))

    cutoff = datetime.now(timezone.utc) - timedelta(days=1)
    assert await event_log_repo.count_terminal_before(cutoff) == 1
    assert await event_log_repo.delete_terminal_before(cutoff) == 1
    assert await event_log_repo.count_by_status() == {
        EventStatus.COMPLETED: 1,
        EventStatus.PENDING: 1,
    }


@pytest.mark.asyncio
async def test_save_same_id_replaces_entry(event_log_repo):
    await event_log_repo.save(_entry("e1", EventStatus.COMPLETED, 0))
    await event_log_repo.save(_entry("e1", EventStatus.FAILED, 0, last_error="boom"))
    assert await event_log_repo.count_by_status() == {EventStatus.FAILED: 1}


@pytest.mark.asyncio
async def test_delete_before_ignores_status(event_log_repo):
    await event_log_repo.save(_entry("a", EventStatus.PENDING, 10))
    await event_log_repo.save(_entry("b", EventStatus.COMPLETED, 10))
    await event_log_repo.save(_entry("c", EventStatus.COMPLETED, 0))

    assert await event_log_repo.delete_before(datetime.now(timezone.utc) - timedelta(days=1)) == 2
