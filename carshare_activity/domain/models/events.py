"""Domain events: structured event types, listener patterns and the in-memory event envelope."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from carshare_activity.domain.exceptions import InvalidEventPatternError

WILDCARD = "*"


class EventNamespace(str, Enum):
    """Closed set of event namespaces. Anything else is rejected at parse time."""

    USER = "user"
    AUTH = "auth"
    RESOURCE = "resource"
    BOOKING = "booking"
    SYSTEM = "system"
    SECURITY = "security"
    ADMIN = "admin"


def _parse_namespace(raw: str, original: str) -> EventNamespace:
    try:
        return EventNamespace(raw)
    except ValueError as e:
        raise InvalidEventPatternError(
            f"Unknown event namespace '{raw}' in '{original}'"
        ) from e


@dataclass(frozen=True)
class EventType:
    """(namespace, name) pair, e.g. (USER, "activity") or (ADMIN, "user.created")."""

    namespace: EventNamespace
    name: str

    def __str__(self) -> str:
        return f"{self.namespace.value}.{self.name}"

    @classmethod
    def parse(cls, value: str) -> "EventType":
        """Parse the dotted string form. Raises InvalidEventPatternError on malformed input."""
        head, sep, tail = (value or "").partition(".")
        if not sep or not tail or WILDCARD in tail:
            raise InvalidEventPatternError(f"Malformed event type '{value}'")
        return cls(_parse_namespace(head, value), tail)


@dataclass(frozen=True)
class EventPattern:
    """
    Listener subscription key. namespace=None matches every event; name=None matches every
    name in the namespace; prefix=True matches names under the dotted prefix.
    """

    namespace: Optional[EventNamespace] = None
    name: Optional[str] = None
    prefix: bool = False

    def matches(self, event_type: EventType) -> bool:
        if self.namespace is None:
            return True
        if self.namespace is not event_type.namespace:
            return False
        if self.name is None:
            return True
        if self.prefix:
            return event_type.name.startswith(f"{self.name}.")
        return event_type.name == self.name

    def __str__(self) -> str:
        if self.namespace is None:
            return WILDCARD
        if self.name is None:
            return f"{self.namespace.value}.{WILDCARD}"
        if self.prefix:
            return f"{self.namespace.value}.{self.name}.{WILDCARD}"
        return f"{self.namespace.value}.{self.name}"

    @classmethod
    def parse(cls, value: str) -> "EventPattern":
        """String shim for the API boundary: '*', 'auth.*', 'admin.user.*', 'user.activity'."""
        if value == WILDCARD:
            return cls()
        head, sep, tail = (value or "").partition(".")
        if not sep or not tail:
            raise InvalidEventPatternError(f"Malformed event pattern '{value}'")
        namespace = _parse_namespace(head, value)
        if tail == WILDCARD:
            return cls(namespace=namespace)
        if tail.endswith(f".{WILDCARD}"):
            stem = tail[: -len(WILDCARD) - 1]
            if not stem or WILDCARD in stem:
                raise InvalidEventPatternError(f"Malformed event pattern '{value}'")
            return cls(namespace=namespace, name=stem, prefix=True)
        if WILDCARD in tail:
            raise InvalidEventPatternError(f"Wildcard must be trailing in '{value}'")
        return cls(namespace=namespace, name=tail)

    @classmethod
    def of(cls, value: "EventPattern | EventType | str") -> "EventPattern":
        if isinstance(value, EventPattern):
            return value
        if isinstance(value, EventType):
            return cls(namespace=value.namespace, name=value.name)
        return cls.parse(value)


ANY_EVENT = EventPattern()

USER_ACTIVITY = EventType(EventNamespace.USER, "activity")


@dataclass(frozen=True)
class DomainEvent:
    """
    Ephemeral envelope published after an activity or system condition occurs.
    Lives only for the duration of dispatch; the ActivityRecord is its durable counterpart.
    """

    id: str
    type: EventType
    timestamp: datetime
    correlation_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    @property
    def actor_id(self) -> Optional[str]:
        return self.payload.get("userId")

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def with_metadata(self, **extra: Any) -> "DomainEvent":
        return replace(self, metadata={**(self.metadata or {}), **extra})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": str(self.type),
            "timestamp": self.timestamp.isoformat(),
            "correlationId": self.correlation_id,
            "metadata": self.metadata,
            **dict(self.payload),
        }
