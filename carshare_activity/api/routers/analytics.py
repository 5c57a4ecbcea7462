"""Analytics API router: GET /activity/analytics."""

from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from carshare_activity.api.dependencies import get_rbac, get_tracker, require_authenticated
from carshare_activity.application.activity_tracker import ActivityTracker
from carshare_activity.security.rbac import Capability, Principal, RBACService

router = APIRouter()


@router.get("/analytics")
async def get_activity_analytics(
    principal: Annotated[Principal, Depends(require_authenticated)],
    tracker: Annotated[ActivityTracker, Depends(get_tracker)],
    rbac: Annotated[RBACService, Depends(get_rbac)],
    start_date: Annotated[Optional[datetime], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[datetime], Query(alias="endDate")] = None,
    user_id: Annotated[Optional[str], Query(alias="userId")] = None,
):
    """
    Activity breakdown by action, resource and severity plus the latest records.
    Callers with view_analytics see system-wide data (optionally narrowed by userId);
    everyone else only sees their own activity and userId is ignored.
    """
    system_wide = rbac.can(principal, Capability.VIEW_ANALYTICS)
    target_user = user_id if system_wide else principal.user_id

    analytics = await tracker.get_activity_analytics(
        start_date=start_date,
        end_date=end_date,
        user_id=target_user,
    )
    return {
        "totalActivities": analytics.total_activities,
        "activitiesByAction": [
            {"action": action, "count": count} for action, count in analytics.by_action.items()
        ],
        "activitiesByResource": [
            {"resource": resource, "count": count}
            for resource, count in analytics.by_resource.items()
        ],
        "activitiesBySeverity": [
            {"severity": severity, "count": count}
            for severity, count in analytics.by_severity.items()
        ],
        "recentActivities": [record.to_dict() for record in analytics.recent_activities],
        "systemWide": system_wide and target_user is None,
        "userId": target_user,
        "requestedBy": principal.user_id,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
