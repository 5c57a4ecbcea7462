"""Domain models. Pure business entities."""

from carshare_activity.domain.models.activity import (
    TERMINAL_EVENT_STATUSES,
    ActivityAction,
    ActivityContext,
    ActivityRecord,
    ActivitySeverity,
    ActivitySource,
    EventCategory,
    EventLogEntry,
    EventStatus,
    MetricPeriod,
    MetricRecord,
)
from carshare_activity.domain.models.events import (
    ANY_EVENT,
    USER_ACTIVITY,
    DomainEvent,
    EventNamespace,
    EventPattern,
    EventType,
)

__all__ = [
    "ANY_EVENT",
    "TERMINAL_EVENT_STATUSES",
    "USER_ACTIVITY",
    "ActivityAction",
    "ActivityContext",
    "ActivityRecord",
    "ActivitySeverity",
    "ActivitySource",
    "DomainEvent",
    "EventCategory",
    "EventLogEntry",
    "EventNamespace",
    "EventPattern",
    "EventStatus",
    "EventType",
    "MetricPeriod",
    "MetricRecord",
]
