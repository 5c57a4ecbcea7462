"""Domain schemas. Request/response and validation."""

from carshare_activity.domain.schemas.activity import (
    ActivityHistoryResponse,
    ActivityTrackItem,
    ActivityTrackRequest,
    ActivityTrackResponse,
    ActivityTrackResult,
    CleanupRequest,
    CleanupStatsSchema,
    CloseConnectionsResponse,
    EmergencyCleanupRequest,
    MetricsGenerateRequest,
    NotificationRequest,
    NotificationResponse,
    RetentionConditionsSchema,
    RetentionPolicySchema,
)

__all__ = [
    "ActivityHistoryResponse",
    "ActivityTrackItem",
    "ActivityTrackRequest",
    "ActivityTrackResponse",
    "ActivityTrackResult",
    "CleanupRequest",
    "CleanupStatsSchema",
    "CloseConnectionsResponse",
    "EmergencyCleanupRequest",
    "MetricsGenerateRequest",
    "NotificationRequest",
    "NotificationResponse",
    "RetentionConditionsSchema",
    "RetentionPolicySchema",
]
