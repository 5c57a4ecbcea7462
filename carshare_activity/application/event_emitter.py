"""In-process publish/subscribe. Each matching listener runs in its own task; failures stay isolated."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from carshare_activity.domain.models.events import DomainEvent, EventPattern, EventType
from carshare_activity.observability.metrics import MetricsCollector

Handler = Callable[[DomainEvent], Awaitable[None]]
ErrorCallback = Callable[[Exception, DomainEvent], Awaitable[None]]
PatternLike = Union[EventPattern, EventType, str]


@dataclass(frozen=True)
class EventListener:
    name: str
    handler: Handler
    priority: int = 0
    on_error: Optional[ErrorCallback] = None


@dataclass(frozen=True)
class _Registration:
    listener: EventListener
    once: bool = False


class EventEmitter:
    """
    Registry of pattern -> listeners. emit() schedules one task per matching listener and
    returns immediately; drain() awaits whatever is still in flight.
    A listener name is unique per pattern: registering it again replaces the earlier entry.
    """

    def __init__(
        self,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._registry: Dict[EventPattern, List[_Registration]] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)

    def on(self, pattern: PatternLike, listener: EventListener) -> None:
        self._register(EventPattern.of(pattern), _Registration(listener))

    def once(self, pattern: PatternLike, listener: EventListener) -> None:
        """Register a listener that is removed after its first dispatch."""
        self._register(EventPattern.of(pattern), _Registration(listener, once=True))

    def off(self, pattern: PatternLike, name: str) -> bool:
        key = EventPattern.of(pattern)
        registrations = self._registry.get(key)
        if not registrations:
            return False
        kept = [r for r in registrations if r.listener.name != name]
        removed = len(kept) != len(registrations)
        if kept:
            self._registry[key] = kept
        else:
            del self._registry[key]
        if removed:
            self._logger.debug(
                "listener_removed", extra={"pattern": str(key), "listener": name}
            )
        return removed

    def remove_all_listeners(self, pattern: Optional[PatternLike] = None) -> None:
        if pattern is None:
            self._registry.clear()
        else:
            self._registry.pop(EventPattern.of(pattern), None)

    def listener_count(self, pattern: Optional[PatternLike] = None) -> int:
        if pattern is None:
            return sum(len(r) for r in self._registry.values())
        return len(self._registry.get(EventPattern.of(pattern), []))

    def emit(self, event: DomainEvent) -> int:
        """
        Schedule every listener whose pattern matches event.type. Must be called from a running
        event loop. Returns the number of listener invocations scheduled.
        """
        selected = self._resolve(event.type)
        for registration in selected:
            task = asyncio.create_task(
                self._invoke(registration.listener, event),
                name=f"emit:{event.type}:{registration.listener.name}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        if self._metrics is not None:
            self._metrics.increment("events_emitted", label=str(event.type))
        return len(selected)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all in-flight listener tasks, including ones they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _register(self, key: EventPattern, registration: _Registration) -> None:
        registrations = [
            r
            for r in self._registry.get(key, [])
            if r.listener.name != registration.listener.name
        ]
        registrations.append(registration)
        self._registry[key] = registrations
        self._logger.debug(
            "listener_registered",
            extra={"pattern": str(key), "listener": registration.listener.name},
        )

    def _resolve(self, event_type: EventType) -> List[_Registration]:
        seen: Set[str] = set()
        selected: List[_Registration] = []
        for key, registrations in list(self._registry.items()):
            if not key.matches(event_type):
                continue
            for registration in registrations:
                if registration.once:
                    self.off(key, registration.listener.name)
                if registration.listener.name in seen:
                    continue
                seen.add(registration.listener.name)
                selected.append(registration)
        # Advisory only: orders task creation, not completion.
        selected.sort(key=lambda r: r.listener.priority, reverse=True)
        return selected

    async def _invoke(self, listener: EventListener, event: DomainEvent) -> None:
        started = time.perf_counter()
        try:
            await listener.handler(event)
        except Exception as e:
            if self._metrics is not None:
                self._metrics.increment("listener_failures", label=listener.name)
            if listener.on_error is None:
                self._logger.error(
                    "listener_failed",
                    extra={
                        "listener": listener.name,
                        "event_type": str(event.type),
                        "event_id": event.id,
                        "error": str(e),
                    },
                )
                return
            try:
                await listener.on_error(e, event)
            except Exception as callback_error:
                self._logger.error(
                    "listener_error_callback_failed",
                    extra={
                        "listener": listener.name,
                        "event_type": str(event.type),
                        "error": str(callback_error),
                    },
                )
        finally:
            if self._metrics is not None:
                self._metrics.observe_duration(
                    "listener_dispatch_ms", (time.perf_counter() - started) * 1000
                )
