"""Activity domain model: actions, severities, contexts and immutable activity records."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class ActivityAction(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"
    PASSWORD_RESET = "PASSWORD_RESET"
    EMAIL_VERIFY = "EMAIL_VERIFY"
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BOOK = "BOOK"
    CANCEL_BOOKING = "CANCEL_BOOKING"
    CONFIRM_BOOKING = "CONFIRM_BOOKING"
    COMPLETE_BOOKING = "COMPLETE_BOOKING"
    ADMIN_LOGIN = "ADMIN_LOGIN"
    USER_PROMOTE = "USER_PROMOTE"
    USER_DEMOTE = "USER_DEMOTE"
    USER_ACTIVATE = "USER_ACTIVATE"
    USER_DEACTIVATE = "USER_DEACTIVATE"
    ROLE_ASSIGN = "ROLE_ASSIGN"
    ROLE_REMOVE = "ROLE_REMOVE"
    SEARCH = "SEARCH"
    FILTER = "FILTER"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    BACKUP = "BACKUP"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    CUSTOM = "CUSTOM"


class ActivitySeverity(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ActivitySource(str, Enum):
    WEB = "web"
    API = "api"
    SYSTEM = "system"
    ADMIN = "admin"


class EventStatus(str, Enum):
    """Processing status of a journaled domain event."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    DISCARDED = "DISCARDED"


TERMINAL_EVENT_STATUSES: FrozenSet[EventStatus] = frozenset(
    {EventStatus.COMPLETED, EventStatus.FAILED, EventStatus.DISCARDED}
)


class EventCategory(str, Enum):
    USER_ACTION = "USER_ACTION"
    SYSTEM_EVENT = "SYSTEM_EVENT"
    SECURITY_EVENT = "SECURITY_EVENT"
    BUSINESS_EVENT = "BUSINESS_EVENT"
    PERFORMANCE_EVENT = "PERFORMANCE_EVENT"


class MetricPeriod(str, Enum):
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class ActivityContext:
    """
    Who/where/when of a single tracked call. Built fresh per call by the event factory
    and consumed immediately by the tracker; never persisted on its own.
    """

    timestamp: datetime
    correlation_id: str
    source: ActivitySource = ActivitySource.WEB
    actor_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    url: Optional[str] = None
    referrer: Optional[str] = None
    method: Optional[str] = None


@dataclass(frozen=True)
class ActivityRecord:
    """
    One audit entry. Immutable once written: never updated, only read or deleted by retention.
    """

    id: str
    action: ActivityAction
    resource: str
    severity: ActivitySeverity
    timestamp: datetime
    actor_id: Optional[str] = None
    session_id: Optional[str] = None
    resource_id: Optional[str] = None
    description: Optional[str] = None
    source: Optional[ActivitySource] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    method: Optional[str] = None
    endpoint: Optional[str] = None
    status_code: Optional[int] = None
    duration_ms: Optional[int] = None
    request_data: Optional[Any] = None
    response_data: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation, camelCase keys as exposed over HTTP."""
        return {
            "id": self.id,
            "userId": self.actor_id,
            "sessionId": self.session_id,
            "action": self.action.value,
            "resource": self.resource,
            "resourceId": self.resource_id,
            "description": self.description,
            "severity": self.severity.value,
            "source": self.source.value if self.source else None,
            "timestamp": self.timestamp.isoformat(),
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "referrer": self.referrer,
            "method": self.method,
            "endpoint": self.endpoint,
            "statusCode": self.status_code,
            "duration": self.duration_ms,
            "requestData": self.request_data,
            "responseData": self.response_data,
            "metadata": self.metadata,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class EventLogEntry:
    """Journaled domain event (everything except user.activity, whose durable form is ActivityRecord)."""

    id: str
    event_type: str
    category: EventCategory
    status: EventStatus
    timestamp: datetime
    source: Optional[str] = None
    source_id: Optional[str] = None
    correlation_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    processed_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass(frozen=True)
class MetricRecord:
    """Aggregate over one period. (metric_type, period, period_start, period_end) is unique."""

    metric_type: str
    value: float
    period: MetricPeriod
    period_start: datetime
    period_end: datetime
    unit: Optional[str] = None
    dimensions: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metricType": self.metric_type,
            "value": self.value,
            "period": self.period.value,
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "unit": self.unit,
            "dimensions": self.dimensions,
            "metadata": self.metadata,
        }
