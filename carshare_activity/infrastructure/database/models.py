# carshare_activity/infrastructure/database/models.py

import uuid

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from carshare_activity.infrastructure.database.session import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


class BaseModel(Base):
    __abstract__ = True

    id = Column(String(36), primary_key=True, default=_new_id)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserActivity(BaseModel):
    """One audit entry. Rows are inserted and deleted, never updated."""

    __tablename__ = "user_activities"
    __table_args__ = (
        Index("ix_user_activities_actor_ts", "actor_id", "timestamp"),
        Index("ix_user_activities_action_ts", "action", "timestamp"),
        Index("ix_user_activities_resource_ts", "resource", "timestamp"),
        Index("ix_user_activities_severity_ts", "severity", "timestamp"),
    )

    actor_id = Column(String(64), nullable=True)
    session_id = Column(String(128), nullable=True)
    action = Column(String(32), nullable=False)
    resource = Column(String(100), nullable=False)
    resource_id = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)
    method = Column(String(16), nullable=True)
    endpoint = Column(Text, nullable=True)
    request_data = Column(JSONType, nullable=True)
    response_data = Column(JSONType, nullable=True)
    status_code = Column(Integer, nullable=True)
    metadata_ = Column("metadata", JSONType, nullable=True)
    tags = Column(JSONType, nullable=True)
    severity = Column(String(16), nullable=False, default="INFO")
    duration_ms = Column(Integer, nullable=True)
    source = Column(String(16), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)


class ActivityEventLog(BaseModel):
    """Journaled domain events (auth, admin, resource, booking, system, security)."""

    __tablename__ = "activity_events"
    __table_args__ = (Index("ix_activity_events_status_processed", "status", "processed_at"),)

    event_type = Column(String(100), nullable=False, index=True)
    event_category = Column(String(32), nullable=False)
    source = Column(String(32), nullable=True)
    source_id = Column(String(64), nullable=True)
    payload = Column(JSONType, nullable=True)
    correlation_id = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, default="PENDING")
    processed_at = Column(DateTime(timezone=True), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)


class ActivityMetric(BaseModel):
    __tablename__ = "activity_metrics"
    __table_args__ = (
        UniqueConstraint(
            "metric_type", "period", "period_start", "period_end", name="uq_activity_metrics_period"
        ),
    )

    metric_type = Column(String(100), nullable=False, index=True)
    metric_value = Column(Float, nullable=False)
    metric_unit = Column(String(32), nullable=True)
    dimensions = Column(JSONType, nullable=True)
    period = Column(String(16), nullable=False)
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False, index=True)
    metadata_ = Column("metadata", JSONType, nullable=True)
