"""Event factory: activity contexts from inbound requests, and normalized domain events. Pure, no I/O."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivityContext,
    ActivitySeverity,
    ActivitySource,
)
from carshare_activity.domain.models.events import (
    USER_ACTIVITY,
    DomainEvent,
    EventNamespace,
    EventType,
)

UNKNOWN_IP = "unknown"

_DESCRIPTIONS: Dict[ActivityAction, str] = {
    ActivityAction.LOGIN: "User logged in",
    ActivityAction.LOGOUT: "User logged out",
    ActivityAction.REGISTER: "User registered",
    ActivityAction.PASSWORD_RESET: "User reset password",
    ActivityAction.EMAIL_VERIFY: "User verified email",
    ActivityAction.CREATE: "Created {resource}",
    ActivityAction.READ: "Viewed {resource}",
    ActivityAction.UPDATE: "Updated {resource}",
    ActivityAction.DELETE: "Deleted {resource}",
    ActivityAction.BOOK: "Booked {resource}",
    ActivityAction.CANCEL_BOOKING: "Cancelled booking for {resource}",
    ActivityAction.CONFIRM_BOOKING: "Confirmed booking for {resource}",
    ActivityAction.COMPLETE_BOOKING: "Completed booking for {resource}",
    ActivityAction.ADMIN_LOGIN: "Admin logged in",
    ActivityAction.USER_PROMOTE: "Promoted user",
    ActivityAction.USER_DEMOTE: "Demoted user",
    ActivityAction.USER_ACTIVATE: "Activated user",
    ActivityAction.USER_DEACTIVATE: "Deactivated user",
    ActivityAction.ROLE_ASSIGN: "Assigned role",
    ActivityAction.ROLE_REMOVE: "Removed role",
    ActivityAction.SEARCH: "Searched {resource}",
    ActivityAction.FILTER: "Filtered {resource}",
    ActivityAction.EXPORT: "Exported {resource}",
    ActivityAction.IMPORT: "Imported {resource}",
    ActivityAction.BACKUP: "Backed up {resource}",
    ActivityAction.SYSTEM_ERROR: "System error occurred",
    ActivityAction.CUSTOM: "Custom action on {resource}",
}

# Actions not listed default to INFO.
_ACTION_SEVERITY: Dict[ActivityAction, ActivitySeverity] = {
    ActivityAction.PASSWORD_RESET: ActivitySeverity.WARN,
    ActivityAction.READ: ActivitySeverity.DEBUG,
    ActivityAction.DELETE: ActivitySeverity.WARN,
    ActivityAction.USER_PROMOTE: ActivitySeverity.WARN,
    ActivityAction.USER_DEMOTE: ActivitySeverity.WARN,
    ActivityAction.USER_DEACTIVATE: ActivitySeverity.WARN,
    ActivityAction.ROLE_ASSIGN: ActivitySeverity.WARN,
    ActivityAction.ROLE_REMOVE: ActivitySeverity.WARN,
    ActivityAction.SEARCH: ActivitySeverity.DEBUG,
    ActivityAction.FILTER: ActivitySeverity.DEBUG,
    ActivityAction.IMPORT: ActivitySeverity.WARN,
    ActivityAction.SYSTEM_ERROR: ActivitySeverity.ERROR,
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def describe(action: ActivityAction, resource: str) -> str:
    """Human-readable default description for an action on a resource."""
    template = _DESCRIPTIONS.get(action)
    if template is None:
        return f"Performed {action.value} on {resource}"
    return template.format(resource=resource)


def default_severity(action: ActivityAction) -> ActivitySeverity:
    return _ACTION_SEVERITY.get(action, ActivitySeverity.INFO)


def client_ip(request: Any) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    headers = getattr(request, "headers", None) or {}
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    client = getattr(request, "client", None)
    host = getattr(client, "host", None)
    return host or UNKNOWN_IP


def create_context(request: Any = None, **overrides: Any) -> ActivityContext:
    """
    Build an ActivityContext from an inbound request (any object exposing `headers`,
    and optionally `client`, `url`, `method`, `state`) plus explicit overrides.
    Never fails: missing fields get defaults (source=web, timestamp=now, new correlation id).
    """
    timestamp = overrides.get("timestamp") or _now_utc()
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    source = overrides.get("source") or ActivitySource.WEB
    if not isinstance(source, ActivitySource):
        try:
            source = ActivitySource(str(source).lower())
        except ValueError:
            source = ActivitySource.WEB

    fields: Dict[str, Any] = {
        "timestamp": timestamp,
        "source": source,
        "actor_id": overrides.get("actor_id"),
        "session_id": overrides.get("session_id"),
        "correlation_id": overrides.get("correlation_id"),
        "ip_address": overrides.get("ip_address"),
        "user_agent": overrides.get("user_agent"),
        "url": overrides.get("url"),
        "referrer": overrides.get("referrer"),
        "method": overrides.get("method"),
    }

    if request is not None:
        headers = getattr(request, "headers", None) or {}
        state = getattr(request, "state", None)
        fields["correlation_id"] = fields["correlation_id"] or getattr(state, "correlation_id", None)
        fields["ip_address"] = fields["ip_address"] or client_ip(request)
        fields["user_agent"] = fields["user_agent"] or headers.get("user-agent")
        fields["referrer"] = fields["referrer"] or headers.get("referer")
        url = getattr(request, "url", None)
        fields["url"] = fields["url"] or (str(url) if url is not None else None)
        fields["method"] = fields["method"] or getattr(request, "method", None)

    fields["correlation_id"] = fields["correlation_id"] or _new_id()
    return ActivityContext(**fields)


class EventFactory:
    """Builds DomainEvents with a consistent envelope (id, type, timestamp, correlation id)."""

    def _event(
        self,
        event_type: EventType,
        context: ActivityContext,
        payload: Mapping[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DomainEvent:
        return DomainEvent(
            id=_new_id(),
            type=event_type,
            timestamp=context.timestamp,
            correlation_id=context.correlation_id,
            metadata=metadata,
            payload=dict(payload),
        )

    def create_user_activity_event(
        self,
        action: ActivityAction,
        resource: str,
        context: ActivityContext,
        *,
        resource_id: Optional[str] = None,
        description: Optional[str] = None,
        severity: Optional[ActivitySeverity] = None,
        tags: Optional[Sequence[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        record_id: Optional[str] = None,
    ) -> DomainEvent:
        payload = {
            "recordId": record_id,
            "userId": context.actor_id,
            "sessionId": context.session_id,
            "action": action.value,
            "resource": resource,
            "resourceId": resource_id,
            "description": description or describe(action, resource),
            "severity": (severity or default_severity(action)).value,
            "tags": list(tags) if tags else [],
            "source": context.source.value,
            "ipAddress": context.ip_address,
            "userAgent": context.user_agent,
        }
        return self._event(USER_ACTIVITY, context, payload, metadata)

    def create_auth_event(
        self,
        kind: str,
        context: ActivityContext,
        *,
        email: Optional[str] = None,
        success: bool = True,
        failure_reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DomainEvent:
        payload = {
            "userId": context.actor_id,
            "email": email,
            "success": success,
            "failureReason": failure_reason,
            "severity": (ActivitySeverity.INFO if success else ActivitySeverity.WARN).value,
            "ipAddress": context.ip_address,
            "userAgent": context.user_agent,
        }
        return self._event(EventType(EventNamespace.AUTH, kind), context, payload, metadata)

    def create_system_event(
        self,
        kind: str,
        severity: ActivitySeverity,
        context: ActivityContext,
        *,
        component: Optional[str] = None,
        error_details: Optional[Dict[str, Any]] = None,
        performance_metrics: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DomainEvent:
        payload = {
            "severity": severity.value,
            "component": component,
            "errorDetails": error_details,
            "performanceMetrics": performance_metrics,
        }
        return self._event(EventType(EventNamespace.SYSTEM, kind), context, payload, metadata)

    def create_security_event(
        self,
        kind: str,
        severity: ActivitySeverity,
        context: ActivityContext,
        *,
        attempted_action: Optional[str] = None,
        risk_score: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DomainEvent:
        payload = {
            "userId": context.actor_id,
            "severity": severity.value,
            "securityContext": {
                "ipAddress": context.ip_address,
                "userAgent": context.user_agent,
                "endpoint": context.url,
                "attemptedAction": attempted_action,
                "riskScore": risk_score,
            },
            "details": details,
        }
        return self._event(EventType(EventNamespace.SECURITY, kind), context, payload, metadata)

    def create_admin_event(
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
    ) -> DomainEvent:
        payload = {
            "userId": admin_user_id,
            "action": action.value,
            "targetUserId": target_user_id,
            "targetResourceId": target_resource_id,
            "changes": changes,
            "justification": justification,
        }
        return self._event(EventType(EventNamespace.ADMIN, kind), context, payload, metadata)

    @staticmethod
    def enrich_event(event: DomainEvent, **metadata: Any) -> DomainEvent:
        """Copy of event with metadata merged in."""
        return event.with_metadata(**metadata)
