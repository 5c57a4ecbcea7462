"""Event journal: persists non-activity domain events into the event log."""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional

from carshare_activity.application.event_emitter import EventEmitter, EventListener
from carshare_activity.application.repositories import EventLogRepository
from carshare_activity.domain.models.activity import EventCategory, EventLogEntry, EventStatus
from carshare_activity.domain.models.events import DomainEvent, EventNamespace, EventPattern

JOURNAL_LISTENER = "event-journal"
DEAD_LETTER_LIMIT = 100

CATEGORY_BY_NAMESPACE: Dict[EventNamespace, EventCategory] = {
    EventNamespace.AUTH: EventCategory.USER_ACTION,
    EventNamespace.ADMIN: EventCategory.USER_ACTION,
    EventNamespace.RESOURCE: EventCategory.BUSINESS_EVENT,
    EventNamespace.BOOKING: EventCategory.BUSINESS_EVENT,
    EventNamespace.SYSTEM: EventCategory.SYSTEM_EVENT,
    EventNamespace.SECURITY: EventCategory.SECURITY_EVENT,
}


def category_for(event: DomainEvent) -> EventCategory:
    if event.type.namespace is EventNamespace.SYSTEM and event.type.name == "performance":
        return EventCategory.PERFORMANCE_EVENT
    return CATEGORY_BY_NAMESPACE.get(event.type.namespace, EventCategory.USER_ACTION)


@dataclass(frozen=True)
class DeadLetter:
    event: DomainEvent
    error: str
    failed_at: datetime


class EventJournal:
    """
    Listener that writes each auth/admin/resource/booking/system/security event to the journal
    with status COMPLETED. A failed write is retried once as a FAILED entry carrying the error;
    when that write fails too, the event is kept in a bounded dead-letter list (oldest dropped
    first) until reprocess_dead_letters() or clear_dead_letters() is called.
    """

    def __init__(
        self,
        repository: EventLogRepository,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._repository = repository
        self._logger = logger or logging.getLogger(__name__)
        self._dead_letters: Deque[DeadLetter] = deque(maxlen=DEAD_LETTER_LIMIT)
        self._listener = EventListener(
            name=JOURNAL_LISTENER,
            handler=self.handle,
            priority=100,
            on_error=self.handle_error,
        )

    def register(self, emitter: EventEmitter) -> None:
        for namespace in CATEGORY_BY_NAMESPACE:
            emitter.on(EventPattern(namespace=namespace), self._listener)

    def unregister(self, emitter: EventEmitter) -> None:
        for namespace in CATEGORY_BY_NAMESPACE:
            emitter.off(EventPattern(namespace=namespace), JOURNAL_LISTENER)

    async def handle(self, event: DomainEvent) -> None:
        await self._repository.save(self._entry(event, EventStatus.COMPLETED))
        self._logger.debug(
            "event_journaled",
            extra={"event_id": event.id, "event_type": str(event.type)},
        )

    async def handle_error(self, error: Exception, event: DomainEvent) -> None:
        self._logger.error(
            "event_journal_failed",
            extra={"event_id": event.id, "event_type": str(event.type), "error": str(error)},
        )
        try:
            await self._repository.save(
                self._entry(event, EventStatus.FAILED, last_error=str(error))
            )
        except Exception as e:
            self._dead_letters.append(
                DeadLetter(event=event, error=str(e), failed_at=datetime.now(timezone.utc))
            )
            self._logger.error(
                "event_dead_lettered",
                extra={
                    "event_id": event.id,
                    "event_type": str(event.type),
                    "error": str(e),
                    "dead_letters": len(self._dead_letters),
                },
            )

    def dead_letters(self) -> List[DeadLetter]:
        return list(self._dead_letters)

    @property
    def dead_letter_count(self) -> int:
        return len(self._dead_letters)

    async def reprocess_dead_letters(self) -> int:
        """Retry each dead letter as a COMPLETED entry. Returns how many were written."""
        pending = list(self._dead_letters)
        self._dead_letters.clear()
        written = 0
        for letter in pending:
            try:
                await self._repository.save(self._entry(letter.event, EventStatus.COMPLETED))
            except Exception as e:
                self._dead_letters.append(
                    DeadLetter(event=letter.event, error=str(e), failed_at=datetime.now(timezone.utc))
                )
                continue
            written += 1
        self._logger.info(
            "dead_letters_reprocessed",
            extra={"written": written, "remaining": len(self._dead_letters)},
        )
        return written

    def clear_dead_letters(self) -> int:
        dropped = len(self._dead_letters)
        self._dead_letters.clear()
        return dropped

    def _entry(
        self,
        event: DomainEvent,
        status: EventStatus,
        last_error: Optional[str] = None,
    ) -> EventLogEntry:
        return EventLogEntry(
            id=event.id,
            event_type=str(event.type),
            category=category_for(event),
            status=status,
            timestamp=event.timestamp,
            source="system",
            source_id=event.actor_id,
            correlation_id=event.correlation_id,
            payload=event.to_dict(),
            processed_at=datetime.now(timezone.utc),
            last_error=last_error,
        )
