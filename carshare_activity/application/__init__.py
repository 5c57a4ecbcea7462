# Application layer: services that orchestrate domain events, persistence ports and live delivery.

from carshare_activity.application.activity_tracker import ActivityTracker, TrackingConfig
from carshare_activity.application.event_emitter import EventEmitter, EventListener
from carshare_activity.application.event_factory import EventFactory, create_context
from carshare_activity.application.event_journal import EventJournal
from carshare_activity.application.exceptions import (
    ApplicationError,
    ArchiveFailureError,
    ConnectionClosedError,
    TrackingFailureError,
)
from carshare_activity.application.metrics_generator import MetricsGenerator
from carshare_activity.application.retention_service import RetentionPolicy, RetentionService
from carshare_activity.application.stream_gateway import StreamFilters, StreamGateway

__all__ = [
    "ActivityTracker",
    "ApplicationError",
    "ArchiveFailureError",
    "ConnectionClosedError",
    "EventEmitter",
    "EventFactory",
    "EventJournal",
    "EventListener",
    "MetricsGenerator",
    "RetentionPolicy",
    "RetentionService",
    "StreamFilters",
    "StreamGateway",
    "TrackingConfig",
    "TrackingFailureError",
    "create_context",
]
