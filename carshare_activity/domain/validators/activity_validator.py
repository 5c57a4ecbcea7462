"""Validators for activity domain rules. Pure functions, no infrastructure or DB access."""

import json
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar

from carshare_activity.domain.exceptions import (
    DomainValidationError,
    InvalidMetadataError,
    InvalidRetentionPolicyError,
)
from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivitySeverity,
    ActivitySource,
)

E = TypeVar("E")

MIN_RETENTION_DAYS = 1


def _parse_enum(enum_cls: Type[E], value: Any, field_name: str, normalize: Callable[[str], str]) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(normalize(str(value).strip()))
    except ValueError as e:
        raise DomainValidationError(f"Invalid {field_name} '{value}'") from e


def parse_action(value: Any) -> ActivityAction:
    """Parse an action name (case-insensitive). Raises DomainValidationError if unknown."""
    return _parse_enum(ActivityAction, value, "action", str.upper)


def parse_severity(value: Any, default: ActivitySeverity = ActivitySeverity.INFO) -> ActivitySeverity:
    """Parse a severity, falling back to default when value is empty."""
    if value is None or value == "":
        return default
    return _parse_enum(ActivitySeverity, value, "severity", str.upper)


def parse_source(value: Any, default: ActivitySource = ActivitySource.WEB) -> ActivitySource:
    if value is None or value == "":
        return default
    return _parse_enum(ActivitySource, value, "source", str.lower)


def parse_csv(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated query value; empty items dropped, empty result -> None."""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


def parse_actions(values: Optional[Iterable[str]]) -> Optional[List[ActivityAction]]:
    if not values:
        return None
    return [parse_action(v) for v in values]


def parse_severities(values: Optional[Iterable[str]]) -> Optional[List[ActivitySeverity]]:
    if not values:
        return None
    return [parse_severity(v) for v in values]


def has_required_fields(action: Any, resource: Any) -> bool:
    """An activity needs both an action and a resource to be tracked at all."""
    return bool(action and str(action).strip()) and bool(resource and str(resource).strip())


def parse_text(value: Any, field_name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise DomainValidationError(f"Invalid {field_name}: expected a string")
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string (trailing Z allowed) or datetime; empty means "now" to the caller."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise DomainValidationError(f"Invalid timestamp '{value}'")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise DomainValidationError(f"Invalid timestamp '{value}'") from e


def parse_tags(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise DomainValidationError("Invalid tags: expected a list of strings")
    return value


def parse_metadata(value: Any) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidMetadataError("metadata must be an object")
    validate_metadata_json_serializable(value)
    return value


def validate_metadata_json_serializable(metadata: Optional[Dict[str, Any]]) -> None:
    """Ensure metadata is JSON-serializable. Raises InvalidMetadataError if not."""
    if metadata is None:
        return
    try:
        json.dumps(metadata)
    except (TypeError, ValueError) as e:
        raise InvalidMetadataError("metadata must be JSON-serializable") from e


def validate_retention_policy(name: str, retention_days: int) -> None:
    """Retention policies need a non-empty name and at least one day of retention."""
    if not name or not name.strip():
        raise InvalidRetentionPolicyError("Invalid retention policy: name is required")
    if retention_days is None or retention_days < MIN_RETENTION_DAYS:
        raise InvalidRetentionPolicyError(
            f"Invalid retention policy '{name}': retentionDays must be >= {MIN_RETENTION_DAYS}"
        )
