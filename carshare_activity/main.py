# carshare_activity/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from carshare_activity.api.middleware import (
    ActivityTrackingMiddleware,
    ActorContextMiddleware,
    CorrelationIdMiddleware,
)
from carshare_activity.api.routers import analytics, cleanup, health, live, metrics, tracking
from carshare_activity.application.exceptions import ApplicationError
from carshare_activity.config.logging import configure_logging
from carshare_activity.config.settings import get_settings
from carshare_activity.domain.exceptions import (
    DomainError,
    DomainValidationError,
    DuplicateRetentionPolicyError,
    InvalidEventPatternError,
    InvalidRetentionPolicyError,
    RetentionPolicyNotFoundError,
)
from carshare_activity.runtime import ActivityRuntime
from carshare_activity.security.exceptions import AuthenticationError, AuthorizationError

settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = ActivityRuntime.from_settings(settings)
    await runtime.start()
    app.state.runtime = runtime
    try:
        yield
    finally:
        await runtime.shutdown()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Middleware order: last added runs first (outermost). Request flow: CorrelationId -> ActorContext -> ActivityTracking.
app.add_middleware(ActivityTrackingMiddleware)
app.add_middleware(ActorContextMiddleware)
app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content={"detail": exc.message})


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request, exc: AuthorizationError):
    return JSONResponse(status_code=403, content={"detail": exc.message})


@app.exception_handler(RetentionPolicyNotFoundError)
async def policy_not_found_error_handler(request, exc: RetentionPolicyNotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(DuplicateRetentionPolicyError)
async def duplicate_policy_error_handler(request, exc: DuplicateRetentionPolicyError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(DomainValidationError)
@app.exception_handler(InvalidRetentionPolicyError)
@app.exception_handler(InvalidEventPatternError)
async def domain_validation_error_handler(request, exc: DomainError):
    return JSONResponse(status_code=422, content={"detail": exc.message})


@app.exception_handler(DomainError)
async def domain_error_handler(request, exc: DomainError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    logger.error("application_error", extra={"error": exc.message, "path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    logger.exception("unexpected_error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Routers: /health, /activity, /admin/activity
app.include_router(health.router)
app.include_router(tracking.router, prefix="/activity")
app.include_router(live.router, prefix="/activity")
app.include_router(analytics.router, prefix="/activity")
app.include_router(cleanup.router, prefix="/admin/activity")
app.include_router(metrics.router, prefix="/admin/activity")
