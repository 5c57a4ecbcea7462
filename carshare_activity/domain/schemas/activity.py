"""Pydantic schemas for the activity HTTP API. camelCase on the wire, snake_case in Python."""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

class ActivityTrackItem(_ApiModel):
    """
    One client-reported activity, kept raw. Fields are parsed per entry by the ingestion
    endpoint so one malformed entry is reported in its own result instead of failing the batch.
    """

    action: Any = None
    resource: Any = None
    resource_id: Any = Field(None, alias="resourceId")
    description: Any = None
    metadata: Any = None
    severity: Any = None
    tags: Any = None
    user_id: Any = Field(None, alias="userId")
    timestamp: Any = None
    source: Any = None
    user_agent: Any = Field(None, alias="userAgent")
    url: Any = None
    referrer: Any = None


class ActivityTrackRequest(_ApiModel):
    activities: List[ActivityTrackItem]


class ActivityTrackResult(_ApiModel):
    action: Optional[str] = None
    resource: Optional[str] = None
    timestamp: Optional[datetime] = None
    status: Literal["processed", "error"]
    error: Optional[str] = None


class ActivityTrackResponse(_ApiModel):
    success: bool = True
    processed: int
    total: int
    activities: List[ActivityTrackResult]


class ActivityHistoryResponse(_ApiModel):
    activities: List[Dict[str, Any]]
    total: int
    has_more: bool = Field(..., alias="hasMore")


# ---------------------------------------------------------------------------
# Live stream
# ---------------------------------------------------------------------------

class NotificationRequest(_ApiModel):
    type: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    data: Optional[Any] = None
    target_users: Optional[List[str]] = Field(None, alias="targetUsers")


class NotificationResponse(_ApiModel):
    success: bool = True
    message: str = "Notification sent"
    sent_to: int = Field(..., alias="sentTo")
    total_connections: int = Field(..., alias="totalConnections")


class CloseConnectionsResponse(_ApiModel):
    success: bool = True
    message: str = "All live connections closed"
    closed_connections: int = Field(..., alias="closedConnections")


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------

class RetentionConditionsSchema(_ApiModel):
    severity: Optional[List[str]] = None
    actions: Optional[List[str]] = None
    resources: Optional[List[str]] = None
    exclude_users: Optional[List[str]] = Field(None, alias="excludeUsers")


class RetentionPolicySchema(_ApiModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    retention_days: int = Field(..., ge=1, alias="retentionDays")
    conditions: Optional[RetentionConditionsSchema] = None
    archive_before_delete: bool = Field(False, alias="archiveBeforeDelete")
    archive_location: Optional[str] = Field(None, alias="archiveLocation")


class CleanupRequest(_ApiModel):
    action: Literal["cleanup", "add_policy", "remove_policy"]
    dry_run: bool = Field(False, alias="dryRun")
    policy: Optional[RetentionPolicySchema] = None
    policy_name: Optional[str] = Field(None, alias="policyName")


class CleanupStatsSchema(_ApiModel):
    processed: int
    deleted: int
    archived: int
    space_saved_mb: float = Field(..., alias="spaceSavedMB")
    execution_time_ms: int = Field(..., alias="executionTimeMs")
    errors: List[str]


class EmergencyCleanupRequest(_ApiModel):
    older_than_days: int = Field(..., ge=1, alias="olderThanDays")
    confirm: str


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

class MetricsGenerateRequest(_ApiModel):
    day: Optional[date] = Field(None, alias="date")
