"""Live activity stream router: GET (SSE subscribe), POST (broadcast), DELETE (close all) on /activity/live."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from carshare_activity.api.dependencies import get_gateway, require_capability
from carshare_activity.application.stream_gateway import StreamFilters, StreamGateway
from carshare_activity.domain.schemas.activity import (
    CloseConnectionsResponse,
    NotificationRequest,
    NotificationResponse,
)
from carshare_activity.domain.validators.activity_validator import parse_csv
from carshare_activity.security.rbac import Capability, Principal

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/live")
async def open_live_stream(
    principal: Annotated[Principal, Depends(require_capability(Capability.VIEW_LIVE_STREAM))],
    gateway: Annotated[StreamGateway, Depends(get_gateway)],
    severity: Optional[str] = None,
    actions: Optional[str] = None,
    resources: Optional[str] = None,
    user_ids: Annotated[Optional[str], Query(alias="userIds")] = None,
):
    """
    Server-Sent Events stream of live activity. Optional comma-separated filters
    (severity, actions, resources, userIds) are strict allow-lists.

    Frames:
        data: {"type": "connection", "data": {"connectionId": "...", ...}}
        data: {"type": "activity", "data": {"action": "BOOK", ...}}
    """
    filters = StreamFilters.build(
        severities=parse_csv(severity),
        actions=parse_csv(actions),
        resources=parse_csv(resources),
        user_ids=parse_csv(user_ids),
    )
    connection = await gateway.connect(principal.user_id, filters)
    return StreamingResponse(
        gateway.stream(connection),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/live", response_model=NotificationResponse, response_model_by_alias=True)
async def broadcast_notification(
    body: NotificationRequest,
    principal: Annotated[Principal, Depends(require_capability(Capability.BROADCAST))],
    gateway: Annotated[StreamGateway, Depends(get_gateway)],
):
    """Push a notification to every open connection, or only to those owned by targetUsers."""
    sent = await gateway.broadcast_notification(
        body.type,
        body.message,
        data=body.data,
        target_user_ids=body.target_users,
        sent_by=principal.user_id,
    )
    return NotificationResponse(sent_to=sent, total_connections=gateway.active_connections)


@router.delete("/live", response_model=CloseConnectionsResponse, response_model_by_alias=True)
async def close_live_streams(
    principal: Annotated[Principal, Depends(require_capability(Capability.CLOSE_STREAMS))],
    gateway: Annotated[StreamGateway, Depends(get_gateway)],
):
    closed = await gateway.close_all()
    return CloseConnectionsResponse(closed_connections=closed)
