"""FastAPI dependency injection: runtime services, caller identity, capability checks."""

from typing import Annotated, Callable

from fastapi import Depends, Request

from carshare_activity.application.activity_tracker import ActivityTracker
from carshare_activity.application.metrics_generator import MetricsGenerator
from carshare_activity.application.retention_service import RetentionService
from carshare_activity.application.stream_gateway import StreamGateway
from carshare_activity.runtime import ActivityRuntime
from carshare_activity.security.rbac import ANONYMOUS, Capability, Principal, RBACService

_rbac = RBACService()


def get_runtime(request: Request) -> ActivityRuntime:
    """Return the runtime built at startup (app.state.runtime)."""
    return request.app.state.runtime


def get_tracker(runtime: Annotated[ActivityRuntime, Depends(get_runtime)]) -> ActivityTracker:
    return runtime.tracker


def get_gateway(runtime: Annotated[ActivityRuntime, Depends(get_runtime)]) -> StreamGateway:
    return runtime.gateway


def get_retention_service(
    runtime: Annotated[ActivityRuntime, Depends(get_runtime)],
) -> RetentionService:
    return runtime.retention


def get_metrics_generator(
    runtime: Annotated[ActivityRuntime, Depends(get_runtime)],
) -> MetricsGenerator:
    return runtime.metrics_generator


def get_rbac() -> RBACService:
    return _rbac


def get_principal(request: Request) -> Principal:
    """Extract the principal from request.state (set by middleware)."""
    return getattr(request.state, "principal", ANONYMOUS)


def get_correlation_id(request: Request) -> str:
    """Extract correlation_id from request.state (set by middleware)."""
    return getattr(request.state, "correlation_id", "") or ""


def require_authenticated(
    principal: Annotated[Principal, Depends(get_principal)],
    rbac: Annotated[RBACService, Depends(get_rbac)],
) -> Principal:
    rbac.require_authenticated(principal)
    return principal


def require_capability(capability: Capability) -> Callable[..., Principal]:
    """Dependency factory: 401 for anonymous callers, 403 when the capability is missing."""

    def _check(
        principal: Annotated[Principal, Depends(get_principal)],
        rbac: Annotated[RBACService, Depends(get_rbac)],
    ) -> Principal:
        rbac.check_permission(principal, capability)
        return principal

    return _check
