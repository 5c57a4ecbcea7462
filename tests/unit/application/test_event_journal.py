"""EventJournal: non-activity events land in the event log with category and status."""

from unittest.mock import AsyncMock

import pytest

from carshare_activity.application.event_emitter import EventEmitter
from carshare_activity.application.event_factory import EventFactory, create_context
from carshare_activity.application.event_journal import DEAD_LETTER_LIMIT, EventJournal, category_for
from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivitySeverity,
    EventCategory,
    EventStatus,
)


@pytest.fixture
def factory():
    return EventFactory()


@pytest.mark.asyncio
async def test_journal_persists_system_and_auth_events(event_log_repo, factory):
    emitter = EventEmitter()
    EventJournal(event_log_repo).register(emitter)
    ctx = create_context(actor_id="u1")

    emitter.emit(factory.create_system_event("error", ActivitySeverity.ERROR, ctx))
    emitter.emit(factory.create_auth_event("login", ctx))
    emitter.emit(factory.create_user_activity_event(ActivityAction.BOOK, "booking", ctx))
    await emitter.drain()

    counts = await event_log_repo.count_by_status()
    assert counts == {EventStatus.COMPLETED: 2}


def test_category_mapping(factory):
    ctx = create_context()
    assert category_for(factory.create_auth_event("login", ctx)) is EventCategory.USER_ACTION
    assert (
        category_for(factory.create_system_event("performance", ActivitySeverity.INFO, ctx))
        is EventCategory.PERFORMANCE_EVENT
    )
    assert (
        category_for(factory.create_security_event("breach", ActivitySeverity.CRITICAL, ctx))
        is EventCategory.SECURITY_EVENT
    )


@pytest.mark.asyncio
async def test_failed_write_is_recorded_as_failed(factory):
    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=[RuntimeError("constraint"), None])
    emitter = EventEmitter()
    EventJournal(repo).register(emitter)

    emitter.emit(factory.create_system_event("error", ActivitySeverity.ERROR, create_context()))
    await emitter.drain()

    assert repo.save.await_count == 2
    failed_entry = repo.save.await_args_list[1].args[0]
    assert failed_entry.status is EventStatus.FAILED
    assert failed_entry.last_error == "constraint"


@pytest.mark.asyncio
async def test_unregister_stops_journaling(event_log_repo, factory):
    emitter = EventEmitter()
    journal = EventJournal(event_log_repo)
    journal.register(emitter)
    journal.unregister(emitter)
    assert emitter.listener_count() == 0


@pytest.mark.asyncio
async def test_event_is_dead_lettered_when_failed_write_also_fails(factory):
    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=[RuntimeError("db down"), RuntimeError("db still down"), None])
    emitter = EventEmitter()
    journal = EventJournal(repo)
    journal.register(emitter)
    event = factory.create_system_event("error", ActivitySeverity.ERROR, create_context())

    emitter.emit(event)
    await emitter.drain()

    [letter] = journal.dead_letters()
    assert letter.event is event
    assert letter.error == "db still down"

    assert await journal.reprocess_dead_letters() == 1
    assert journal.dead_letter_count == 0
    replayed = repo.save.await_args_list[2].args[0]
    assert replayed.id == event.id
    assert replayed.status is EventStatus.COMPLETED


@pytest.mark.asyncio
async def test_dead_letters_are_bounded_and_clearable(factory):
    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=RuntimeError("db down"))
    emitter = EventEmitter()
    journal = EventJournal(repo)
    journal.register(emitter)

    for _ in range(DEAD_LETTER_LIMIT + 5):
        emitter.emit(factory.create_auth_event("login", create_context()))
    await emitter.drain()

    assert journal.dead_letter_count == DEAD_LETTER_LIMIT
    assert await journal.reprocess_dead_letters() == 0
    assert journal.dead_letter_count == DEAD_LETTER_LIMIT
    assert journal.clear_dead_letters() == DEAD_LETTER_LIMIT
    assert journal.dead_letters() == []
