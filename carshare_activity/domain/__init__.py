"""Domain layer: models, schemas, validators, exceptions. Pure business logic only."""

from carshare_activity.domain.exceptions import (
    DomainError,
    DomainValidationError,
    DuplicateRetentionPolicyError,
    InvalidEventPatternError,
    InvalidMetadataError,
    InvalidRetentionPolicyError,
    RetentionPolicyNotFoundError,
)
from carshare_activity.domain.models import (
    ActivityAction,
    ActivityContext,
    ActivityRecord,
    ActivitySeverity,
    ActivitySource,
    DomainEvent,
    EventNamespace,
    EventPattern,
    EventType,
)

__all__ = [
    "ActivityAction",
    "ActivityContext",
    "ActivityRecord",
    "ActivitySeverity",
    "ActivitySource",
    "DomainError",
    "DomainEvent",
    "DomainValidationError",
    "DuplicateRetentionPolicyError",
    "EventNamespace",
    "EventPattern",
    "EventType",
    "InvalidEventPatternError",
    "InvalidMetadataError",
    "InvalidRetentionPolicyError",
    "RetentionPolicyNotFoundError",
]
