"""
Activity tracker: the ingestion API. Persists one ActivityRecord per tracked action and publishes
the matching domain event. Persistence is primary; publication is best-effort and never rolls
back the write. Tracking never breaks the request it instruments.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from carshare_activity.application.event_emitter import EventEmitter
from carshare_activity.application.event_factory import EventFactory, describe
from carshare_activity.application.exceptions import TrackingFailureError
from carshare_activity.application.repositories import ActivityQuery, ActivityRepository
from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivityContext,
    ActivityRecord,
    ActivitySeverity,
)
from carshare_activity.observability.metrics import MetricsCollector

MASKED = "***masked***"
MAX_HISTORY_LIMIT = 100
DEFAULT_HISTORY_LIMIT = 50
RECENT_ACTIVITY_COUNT = 10

_MINIMAL_ACTIONS = frozenset(
    {
        ActivityAction.LOGIN,
        ActivityAction.LOGOUT,
        ActivityAction.REGISTER,
        ActivityAction.CREATE,
        ActivityAction.UPDATE,
        ActivityAction.DELETE,
    }
)
_NOISY_ACTIONS = frozenset({ActivityAction.READ, ActivityAction.SEARCH, ActivityAction.FILTER})

_METHOD_ACTIONS = {
    "GET": ActivityAction.READ,
    "POST": ActivityAction.CREATE,
    "PUT": ActivityAction.UPDATE,
    "PATCH": ActivityAction.UPDATE,
    "DELETE": ActivityAction.DELETE,
}

_AUTH_ACTIONS = {
    "login": ActivityAction.LOGIN,
    "logout": ActivityAction.LOGOUT,
    "register": ActivityAction.REGISTER,
    "password_reset": ActivityAction.PASSWORD_RESET,
    "email_verify": ActivityAction.EMAIL_VERIFY,
}


@dataclass(frozen=True)
class TrackingConfig:
    enabled: bool = True
    level: str = "detailed"
    exclude_actions: FrozenSet[ActivityAction] = frozenset()
    exclude_resources: FrozenSet[str] = frozenset()
    exclude_endpoints: Tuple[str, ...] = ("/health", "/favicon.ico")
    mask_sensitive_data: bool = True
    sensitive_fields: Tuple[str, ...] = ("password", "token", "secret", "key")
    max_payload_bytes: int = 10_000

    @classmethod
    def from_settings(cls, settings: Any) -> "TrackingConfig":
        excluded_actions = set()
        for name in settings.tracking_exclude_actions:
            try:
                excluded_actions.add(ActivityAction(name.upper()))
            except ValueError:
                continue
        return cls(
            enabled=settings.tracking_enabled,
            level=settings.tracking_level,
            exclude_actions=frozenset(excluded_actions),
            exclude_resources=frozenset(settings.tracking_exclude_resources),
            exclude_endpoints=tuple(settings.tracking_exclude_endpoints),
            mask_sensitive_data=settings.tracking_mask_sensitive_data,
            sensitive_fields=tuple(settings.tracking_sensitive_fields),
            max_payload_bytes=settings.tracking_max_payload_bytes,
        )


@dataclass(frozen=True)
class ActivityHistory:
    activities: List[ActivityRecord]
    total: int
    has_more: bool


@dataclass(frozen=True)
class ActivityAnalytics:
    total_activities: int
    by_action: Dict[str, int] = field(default_factory=dict)
    by_resource: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)
    recent_activities: List[ActivityRecord] = field(default_factory=list)


def action_for_method(method: str) -> ActivityAction:
    return _METHOD_ACTIONS.get((method or "").upper(), ActivityAction.CUSTOM)


def severity_for_status(status_code: Optional[int]) -> ActivitySeverity:
    if not status_code:
        return ActivitySeverity.INFO
    if status_code >= 500:
        return ActivitySeverity.ERROR
    if status_code >= 400:
        return ActivitySeverity.WARN
    return ActivitySeverity.INFO


class ActivityTracker:
    """
    Orchestrates record -> persist -> publish. No HTTP, no ORM.
    `record_activity` raises TrackingFailureError on a persistence failure;
    every `track_*` method is best-effort and never raises.
    """

    def __init__(
        self,
        repository: ActivityRepository,
        emitter: EventEmitter,
        factory: Optional[EventFactory] = None,
        config: Optional[TrackingConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._repository = repository
        self._emitter = emitter
        self._factory = factory or EventFactory()
        self._config = config or TrackingConfig()
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)

    @property
    def config(self) -> TrackingConfig:
        return self._config

    def configure(self, **changes: Any) -> TrackingConfig:
        self._config = replace(self._config, **changes)
        return self._config

    # --- filtering and sanitizing ---

    def should_track(
        self,
        action: ActivityAction,
        resource: str,
        endpoint: Optional[str] = None,
    ) -> bool:
        config = self._config
        if not config.enabled:
            return False
        if action in config.exclude_actions or resource in config.exclude_resources:
            return False
        if endpoint and self.is_excluded_endpoint(endpoint):
            return False
        if config.level == "minimal":
            return action in _MINIMAL_ACTIONS
        if config.level == "standard":
            return action not in _NOISY_ACTIONS
        return True

    def is_excluded_endpoint(self, endpoint: str) -> bool:
        return any(endpoint.startswith(prefix) for prefix in self._config.exclude_endpoints)

    def sanitize(self, data: Any) -> Any:
        """Mask sensitive keys (recursively) and cap the serialized size."""
        if data is None:
            return None
        if self._config.mask_sensitive_data:
            data = self._mask(data)
        try:
            size = len(json.dumps(data, default=str).encode("utf-8"))
        except (TypeError, ValueError):
            return {"unserializable": True}
        if size > self._config.max_payload_bytes:
            return {"truncated": True, "originalSize": size}
        return data

    def _mask(self, data: Any) -> Any:
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                lowered = str(key).lower()
                if any(f.lower() in lowered for f in self._config.sensitive_fields):
                    masked[key] = MASKED
                else:
                    masked[key] = self._mask(value)
            return masked
        if isinstance(data, (list, tuple)):
            return [self._mask(item) for item in data]
        return data

    # --- core pipeline ---

    async def record_activity(
        self,
        action: ActivityAction,
        resource: str,
        context: ActivityContext,
        *,
        resource_id: Optional[str] = None,
        description: Optional[str] = None,
        severity: Optional[ActivitySeverity] = None,
        request_data: Any = None,
        response_data: Any = None,
        status_code: Optional[int] = None,
        duration_ms: Optional[int] = None,
        endpoint: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityRecord]:
        """
        Persist one activity and publish user.activity. Returns None when tracking configuration
        filters the action out. Raises TrackingFailureError if the write fails.
        """
        if not self.should_track(action, resource, endpoint):
            return None

        record = ActivityRecord(
            id=str(uuid.uuid4()),
            action=action,
            resource=resource,
            severity=severity or ActivitySeverity.INFO,
            timestamp=context.timestamp,
            actor_id=context.actor_id,
            session_id=context.session_id,
            resource_id=resource_id,
            description=description or describe(action, resource),
            source=context.source,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            referrer=context.referrer,
            method=context.method,
            endpoint=endpoint,
            status_code=status_code,
            duration_ms=duration_ms,
            request_data=self.sanitize(request_data),
            response_data=self.sanitize(response_data),
            metadata=metadata,
            tags=tuple(tags or ()),
        )

        started = time.perf_counter()
        try:
            record = await self._repository.save(record)
        except Exception as e:
            self._logger.error(
                "activity_persist_failed",
                extra={
                    "action": action.value,
                    "resource": resource,
                    "correlation_id": context.correlation_id,
                    "error": str(e),
                },
            )
            raise TrackingFailureError(f"Failed to persist activity: {e}") from e
        if self._metrics is not None:
            self._metrics.increment("activities_tracked", label=action.value)
            self._metrics.observe_duration(
                "activity_persist_ms", (time.perf_counter() - started) * 1000
            )

        self._publish(
            lambda: self._factory.create_user_activity_event(
                record.action,
                record.resource,
                context,
                resource_id=record.resource_id,
                description=record.description,
                severity=record.severity,
                tags=record.tags,
                metadata=record.metadata,
                record_id=record.id,
            )
        )
        self._logger.info(
            "activity_tracked",
            extra={
                "activity_id": record.id,
                "action": record.action.value,
                "resource": record.resource,
                "severity": record.severity.value,
            },
        )
        return record

    async def track_activity(
        self,
        action: ActivityAction,
        resource: str,
        context: ActivityContext,
        **details: Any,
    ) -> Optional[ActivityRecord]:
        """Best-effort variant of record_activity. Failures are logged and reported as system.error."""
        try:
            return await self.record_activity(action, resource, context, **details)
        except Exception as e:
            self._logger.error(
                "activity_tracking_failed",
                extra={"action": action.value, "resource": resource, "error": str(e)},
            )
            await self.track_system(
                "error",
                ActivitySeverity.ERROR,
                context,
                component="activity-tracker",
                error_details={"message": str(e), "code": "ACTIVITY_TRACKING_ERROR"},
            )
            return None

    async def track_system(
        self,
        kind: str,
        severity: ActivitySeverity,
        context: ActivityContext,
        *,
        component: Optional[str] = None,
        error_details: Optional[Dict[str, Any]] = None,
        performance_metrics: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityRecord]:
        """Persist a system record and publish system.<kind>. A second failure here is swallowed."""
        if not self._config.enabled:
            return None
        action = ActivityAction.SYSTEM_ERROR if kind == "error" else ActivityAction.CUSTOM
        message = (error_details or {}).get("message")
        record = ActivityRecord(
            id=str(uuid.uuid4()),
            action=action,
            resource=component or "system",
            severity=severity,
            timestamp=context.timestamp,
            actor_id=context.actor_id,
            description=message or f"System event: {kind}",
            source=context.source,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            metadata={
                **(metadata or {}),
                "eventType": f"system.{kind}",
                "errorDetails": error_details,
                "performanceMetrics": performance_metrics,
            },
            tags=("system", kind),
        )
        saved = await self._save_quietly(record)
        self._publish(
            lambda: self._factory.create_system_event(
                kind,
                severity,
                context,
                component=component,
                error_details=error_details,
                performance_metrics=performance_metrics,
                metadata=metadata,
            )
        )
        return saved

    async def track_auth(
        self,
        kind: str,
        context: ActivityContext,
        *,
        email: Optional[str] = None,
        success: bool = True,
        failure_reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityRecord]:
        if not self._config.enabled:
            return None
        action = _AUTH_ACTIONS.get(kind, ActivityAction.CUSTOM)
        record = ActivityRecord(
            id=str(uuid.uuid4()),
            action=action,
            resource="auth",
            severity=ActivitySeverity.INFO if success else ActivitySeverity.WARN,
            timestamp=context.timestamp,
            actor_id=context.actor_id,
            session_id=context.session_id,
            description=describe(action, "auth") if success else f"Failed {kind}: {failure_reason or 'unknown reason'}",
            source=context.source,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            metadata={**(metadata or {}), "email": email, "success": success},
            tags=("auth", kind),
        )
        saved = await self._save_quietly(record)
        self._publish(
            lambda: self._factory.create_auth_event(
                kind,
                context,
                email=email,
                success=success,
                failure_reason=failure_reason,
                metadata=metadata,
            )
        )
        return saved

    async def track_security(
        self,
        kind: str,
        severity: ActivitySeverity,
        context: ActivityContext,
        *,
        attempted_action: Optional[str] = None,
        risk_score: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish only; the event journal persists security events."""
        if not self._config.enabled:
            return
        self._publish(
            lambda: self._factory.create_security_event(
                kind,
                severity,
                context,
                attempted_action=attempted_action,
                risk_score=risk_score,
                details=self.sanitize(details),
                metadata=metadata,
            )
        )

    async def track_admin(
        self,
        kind: str,
        admin_user_id: str,
        action: ActivityAction,
        context: ActivityContext,
        *,
        target_user_id: Optional[str] = None,
        target_resource_id: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        justification: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish only; the event journal persists admin events."""
        if not self._config.enabled:
            return
        self._publish(
            lambda: self._factory.create_admin_event(
                kind,
                admin_user_id,
                action,
                context,
                target_user_id=target_user_id,
                target_resource_id=target_resource_id,
                changes=self.sanitize(changes),
                justification=justification,
                metadata=metadata,
            )
        )

    async def track_page_view(
        self,
        path: str,
        context: ActivityContext,
        *,
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityRecord]:
        if self._config.level == "minimal":
            return None
        return await self.track_activity(
            ActivityAction.READ,
            "page",
            context,
            resource_id=path,
            description=f"Viewed page: {path}",
            severity=ActivitySeverity.DEBUG,
            tags=["page-view"],
            metadata={"title": title, "referrer": context.referrer, **(metadata or {})},
        )

    async def track_api_request(
        self,
        method: str,
        endpoint: str,
        context: ActivityContext,
        *,
        request_data: Any = None,
        response_data: Any = None,
        status_code: Optional[int] = None,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityRecord]:
        if self.is_excluded_endpoint(endpoint):
            return None
        return await self.track_activity(
            action_for_method(method),
            "api",
            context,
            resource_id=endpoint,
            description=f"{method.upper()} {endpoint}",
            severity=severity_for_status(status_code),
            request_data=request_data,
            response_data=response_data,
            status_code=status_code,
            duration_ms=duration_ms,
            endpoint=endpoint,
            tags=["api-request"],
            metadata=metadata,
        )

    # --- reads ---

    async def get_user_activity_history(
        self,
        user_id: str,
        *,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        actions: Optional[Sequence[ActivityAction]] = None,
        resources: Optional[Sequence[str]] = None,
        severities: Optional[Sequence[ActivitySeverity]] = None,
    ) -> ActivityHistory:
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        offset = max(0, offset)
        query = ActivityQuery(
            actor_id=user_id,
            since=start_date,
            until=end_date,
            actions=actions,
            resources=resources,
            severities=severities,
        )
        activities = await self._repository.find(query, limit=limit, offset=offset)
        total = await self._repository.count(query)
        return ActivityHistory(
            activities=activities,
            total=total,
            has_more=offset + len(activities) < total,
        )

    async def get_activity_analytics(
        self,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> ActivityAnalytics:
        query = ActivityQuery(actor_id=user_id, since=start_date, until=end_date)
        return ActivityAnalytics(
            total_activities=await self._repository.count(query),
            by_action=_sorted_counts(await self._repository.count_by("action", query)),
            by_resource=_sorted_counts(await self._repository.count_by("resource", query)),
            by_severity=_sorted_counts(await self._repository.count_by("severity", query)),
            recent_activities=await self._repository.find(query, limit=RECENT_ACTIVITY_COUNT),
        )

    # --- helpers ---

    async def _save_quietly(self, record: ActivityRecord) -> Optional[ActivityRecord]:
        try:
            return await self._repository.save(record)
        except Exception as e:
            self._logger.error(
                "activity_persist_failed",
                extra={
                    "action": record.action.value,
                    "resource": record.resource,
                    "error": str(e),
                },
            )
            return None

    def _publish(self, build_event) -> None:
        try:
            event = build_event()
            self._emitter.emit(event)
        except Exception as e:
            self._logger.error("event_publish_failed", extra={"error": str(e)})


def _sorted_counts(counts: Dict[str, int]) -> Dict[str, int]:
    return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))
