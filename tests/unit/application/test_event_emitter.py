"""EventEmitter: pattern routing, once/off, failure isolation, error callbacks, counters."""

import asyncio
from datetime import datetime, timezone

import pytest

from carshare_activity.application.event_emitter import EventEmitter, EventListener
from carshare_activity.domain.models.events import DomainEvent, EventType
from carshare_activity.observability.metrics import MetricsCollector


def _event(event_type: str, **payload) -> DomainEvent:
    return DomainEvent(
        id=f"evt-{event_type}",
        type=EventType.parse(event_type),
        timestamp=datetime.now(timezone.utc),
        payload=payload,
    )


def _recorder(name: str, received: list, **kwargs) -> EventListener:
    async def handler(event):
        received.append((name, str(event.type)))

    return EventListener(name=name, handler=handler, **kwargs)


@pytest.mark.asyncio
async def test_namespace_listener_receives_only_its_namespace():
    emitter = EventEmitter()
    received = []
    emitter.on("auth.*", _recorder("auth", received))

    emitter.emit(_event("auth.login"))
    emitter.emit(_event("auth.logout"))
    emitter.emit(_event("booking.create"))
    await emitter.drain()

    assert received == [("auth", "auth.login"), ("auth", "auth.logout")]


@pytest.mark.asyncio
async def test_emit_returns_scheduled_count_and_is_non_blocking():
    emitter = EventEmitter()
    gate = asyncio.Event()
    done = []

    async def slow(event):
        await gate.wait()
        done.append(event.id)

    emitter.on("*", EventListener(name="slow", handler=slow))
    emitter.on("user.activity", EventListener(name="exact", handler=slow))

    assert emitter.emit(_event("user.activity")) == 2
    assert done == []
    gate.set()
    await emitter.drain()
    assert len(done) == 2


@pytest.mark.asyncio
async def test_same_listener_under_two_matching_patterns_runs_once():
    emitter = EventEmitter()
    received = []
    listener = _recorder("dup", received)
    emitter.on("*", listener)
    emitter.on("system.*", listener)

    assert emitter.emit(_event("system.error")) == 1
    await emitter.drain()
    assert received == [("dup", "system.error")]


@pytest.mark.asyncio
async def test_registering_same_name_replaces_listener():
    emitter = EventEmitter()
    received = []
    emitter.on("auth.*", _recorder("a", received))
    emitter.on("auth.*", _recorder("a", received))
    assert emitter.listener_count("auth.*") == 1


@pytest.mark.asyncio
async def test_once_listener_removed_after_first_dispatch():
    emitter = EventEmitter()
    received = []
    emitter.once("auth.login", _recorder("once", received))

    emitter.emit(_event("auth.login"))
    emitter.emit(_event("auth.login"))
    await emitter.drain()

    assert received == [("once", "auth.login")]
    assert emitter.listener_count() == 0


@pytest.mark.asyncio
async def test_off_removes_by_name():
    emitter = EventEmitter()
    received = []
    emitter.on("auth.*", _recorder("a", received))
    emitter.on("auth.*", _recorder("b", received))

    assert emitter.off("auth.*", "a") is True
    assert emitter.off("auth.*", "missing") is False
    emitter.emit(_event("auth.login"))
    await emitter.drain()

    assert received == [("b", "auth.login")]


@pytest.mark.asyncio
async def test_failing_listener_does_not_affect_others():
    metrics = MetricsCollector()
    emitter = EventEmitter(metrics=metrics)
    received = []

    async def boom(event):
        raise RuntimeError("listener broke")

    emitter.on("*", EventListener(name="boom", handler=boom))
    emitter.on("*", _recorder("ok", received))

    emitter.emit(_event("system.error"))
    await emitter.drain()

    assert received == [("ok", "system.error")]
    assert metrics.get_counter("listener_failures", label="boom") == 1


@pytest.mark.asyncio
async def test_error_callback_receives_error_and_event():
    emitter = EventEmitter()
    failures = []

    async def boom(event):
        raise ValueError("nope")

    async def on_error(error, event):
        failures.append((str(error), event.id))

    emitter.on("auth.*", EventListener(name="boom", handler=boom, on_error=on_error))
    emitter.emit(_event("auth.login"))
    await emitter.drain()

    assert failures == [("nope", "evt-auth.login")]


@pytest.mark.asyncio
async def test_failing_error_callback_is_contained():
    emitter = EventEmitter()

    async def boom(event):
        raise ValueError("first")

    async def on_error(error, event):
        raise RuntimeError("second")

    emitter.on("*", EventListener(name="boom", handler=boom, on_error=on_error))
    emitter.emit(_event("auth.login"))
    await emitter.drain()


@pytest.mark.asyncio
async def test_priority_orders_task_creation():
    emitter = EventEmitter()
    started = []

    def listener(name, priority):
        async def handler(event):
            started.append(name)

        return EventListener(name=name, handler=handler, priority=priority)

    emitter.on("*", listener("low", 0))
    emitter.on("*", listener("high", 10))
    emitter.emit(_event("system.info"))
    await emitter.drain()

    assert started == ["high", "low"]


@pytest.mark.asyncio
async def test_events_emitted_counter_labelled_by_type():
    metrics = MetricsCollector()
    emitter = EventEmitter(metrics=metrics)
    emitter.emit(_event("booking.create"))
    emitter.emit(_event("booking.create"))
    assert metrics.get_counter("events_emitted", label="booking.create") == 2


@pytest.mark.asyncio
async def test_pending_tasks_and_dispatch_timing():
    metrics = MetricsCollector()
    emitter = EventEmitter(metrics=metrics)
    gate = asyncio.Event()

    async def waiting(event):
        await gate.wait()

    async def failing(event):
        raise RuntimeError("boom")

    emitter.on("auth.*", EventListener(name="waiting", handler=waiting))
    emitter.on("auth.*", EventListener(name="failing", handler=failing))
    emitter.emit(_event("auth.login"))
    assert emitter.pending_tasks == 2

    gate.set()
    await emitter.drain()
    assert emitter.pending_tasks == 0
    assert metrics.export_metrics()["timings"]["listener_dispatch_ms"]["count"] == 2


def test_remove_all_listeners():
    emitter = EventEmitter()
    emitter.on("auth.*", _recorder("a", []))
    emitter.on("system.*", _recorder("b", []))
    emitter.remove_all_listeners("auth.*")
    assert emitter.listener_count() == 1
    emitter.remove_all_listeners()
    assert emitter.listener_count() == 0
