"""Domain validators. Pure validation functions."""

from carshare_activity.domain.validators.activity_validator import (
    has_required_fields,
    parse_action,
    parse_actions,
    parse_csv,
    parse_severities,
    parse_severity,
    parse_source,
    validate_metadata_json_serializable,
    validate_retention_policy,
)

__all__ = [
    "has_required_fields",
    "parse_action",
    "parse_actions",
    "parse_csv",
    "parse_severities",
    "parse_severity",
    "parse_source",
    "validate_metadata_json_serializable",
    "validate_retention_policy",
]
