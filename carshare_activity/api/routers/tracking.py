"""Tracking API router: POST /activity/track (batch ingestion), GET /activity/track (own history)."""

import logging
from datetime import datetime
from typing import Annotated, Any, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from carshare_activity.api.dependencies import get_principal, get_tracker, require_authenticated
from carshare_activity.application.activity_tracker import (
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    ActivityTracker,
)
from carshare_activity.application.event_factory import create_context
from carshare_activity.domain.models.activity import ActivitySeverity
from carshare_activity.domain.schemas.activity import (
    ActivityHistoryResponse,
    ActivityTrackItem,
    ActivityTrackRequest,
    ActivityTrackResponse,
    ActivityTrackResult,
)
from carshare_activity.domain.validators.activity_validator import (
    has_required_fields,
    parse_action,
    parse_actions,
    parse_csv,
    parse_metadata,
    parse_severities,
    parse_severity,
    parse_source,
    parse_tags,
    parse_text,
    parse_timestamp,
)
from carshare_activity.security.rbac import Principal

logger = logging.getLogger(__name__)

router = APIRouter()


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


async def _track_item(
    request: Request,
    item: ActivityTrackItem,
    principal: Principal,
    tracker: ActivityTracker,
) -> ActivityTrackResult:
    context = None
    timestamp = None
    try:
        action = parse_action(item.action)
        severity = parse_severity(item.severity)
        timestamp = parse_timestamp(item.timestamp)
        tags = parse_tags(item.tags)
        metadata = parse_metadata(item.metadata)
        user_agent = parse_text(item.user_agent, "userAgent")
        url = parse_text(item.url, "url")
        referrer = parse_text(item.referrer, "referrer")
        context = create_context(
            request,
            actor_id=principal.user_id or parse_text(item.user_id, "userId"),
            source=parse_source(item.source),
            timestamp=timestamp,
            user_agent=user_agent,
            url=url,
            referrer=referrer,
        )
        await tracker.record_activity(
            action,
            parse_text(item.resource, "resource"),
            context,
            resource_id=parse_text(item.resource_id, "resourceId"),
            description=parse_text(item.description, "description"),
            severity=severity,
            tags=tags,
            metadata={
                **(metadata or {}),
                "url": url,
                "referrer": referrer,
                "userAgent": user_agent,
                "source": "frontend",
            },
        )
    except Exception as e:
        logger.warning(
            "activity_item_failed",
            extra={"action": _as_text(item.action), "resource": _as_text(item.resource), "error": str(e)},
        )
        await tracker.track_system(
            "error",
            ActivitySeverity.ERROR,
            context or create_context(request, actor_id=principal.user_id),
            component="activity-api",
            error_details={"message": str(e), "code": "ACTIVITY_PROCESSING_ERROR"},
            metadata={"originalActivity": item.model_dump(mode="json", by_alias=True)},
        )
        return ActivityTrackResult(
            action=_as_text(item.action),
            resource=_as_text(item.resource),
            timestamp=timestamp,
            status="error",
            error=getattr(e, "message", None) or str(e),
        )
    return ActivityTrackResult(
        action=action.value,
        resource=item.resource,
        timestamp=context.timestamp,
        status="processed",
    )


@router.post("/track", response_model=ActivityTrackResponse)
async def track_activities(
    request: Request,
    body: ActivityTrackRequest,
    principal: Annotated[Principal, Depends(get_principal)],
    tracker: Annotated[ActivityTracker, Depends(get_tracker)],
):
    """
    Ingest a batch of client activities. Entries without action or resource are skipped;
    a failing entry is reported in its own result and never fails the batch.
    """
    results: List[ActivityTrackResult] = []
    for item in body.activities:
        if not has_required_fields(item.action, item.resource):
            continue
        results.append(await _track_item(request, item, principal, tracker))

    return ActivityTrackResponse(
        processed=sum(1 for r in results if r.status == "processed"),
        total=len(body.activities),
        activities=results,
    )


@router.get("/track", response_model=ActivityHistoryResponse, response_model_by_alias=True)
async def get_activity_history(
    principal: Annotated[Principal, Depends(require_authenticated)],
    tracker: Annotated[ActivityTracker, Depends(get_tracker)],
    limit: Annotated[int, Query(ge=1)] = DEFAULT_HISTORY_LIMIT,
    offset: Annotated[int, Query(ge=0)] = 0,
    start_date: Annotated[Optional[datetime], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[datetime], Query(alias="endDate")] = None,
    actions: Optional[str] = None,
    resources: Optional[str] = None,
    severity: Optional[str] = None,
):
    """The caller's own activity history, newest first. limit is capped at 100."""
    history = await tracker.get_user_activity_history(
        principal.user_id,
        limit=min(limit, MAX_HISTORY_LIMIT),
        offset=offset,
        start_date=start_date,
        end_date=end_date,
        actions=parse_actions(parse_csv(actions)),
        resources=parse_csv(resources),
        severities=parse_severities(parse_csv(severity)),
    )
    return ActivityHistoryResponse(
        activities=[record.to_dict() for record in history.activities],
        total=history.total,
        has_more=history.has_more,
    )
