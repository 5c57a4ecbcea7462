"""API middleware: correlation ID, actor context, activity tracking."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from carshare_activity.application.event_factory import create_context
from carshare_activity.core.context import actor_id_ctx, correlation_id_ctx
from carshare_activity.domain.models.activity import ActivitySource
from carshare_activity.security.rbac import Principal, parse_roles

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
USER_ID_HEADER = "X-User-ID"
USER_ROLES_HEADER = "X-User-Roles"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Generate or preserve correlation ID; attach to request.state, response header, and logging context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        correlation_id_ctx.set(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class ActorContextMiddleware(BaseHTTPMiddleware):
    """Read the caller identity set by the upstream gateway. Missing X-User-ID means anonymous."""

    async def dispatch(self, request: Request, call_next) -> Response:
        user_id = (request.headers.get(USER_ID_HEADER) or "").strip() or None
        principal = Principal(
            user_id=user_id,
            roles=parse_roles(request.headers.get(USER_ROLES_HEADER)) if user_id else frozenset(),
        )
        request.state.principal = principal
        actor_id_ctx.set(user_id)
        return await call_next(request)


class ActivityTrackingMiddleware(BaseHTTPMiddleware):
    """
    After the response: record the API request through the tracker (best-effort).
    Paths under the tracker's excluded endpoints (tracking_exclude_endpoints) are skipped.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        runtime = getattr(request.app.state, "runtime", None)
        if runtime is None or runtime.tracker.is_excluded_endpoint(path):
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)

        principal = getattr(request.state, "principal", None)
        context = create_context(
            request,
            actor_id=principal.user_id if principal else None,
            source=ActivitySource.API,
        )
        await runtime.tracker.track_api_request(
            request.method,
            path,
            context,
            status_code=response.status_code,
            duration_ms=int((time.perf_counter() - started) * 1000),
            metadata={"query": str(request.url.query)} if request.url.query else None,
        )
        return response
