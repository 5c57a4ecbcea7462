# carshare_activity/api/routers/health.py

from fastapi import APIRouter, Request

from carshare_activity.config.settings import get_settings

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Health check with correlation ID, open stream connections, counters and emitter state."""
    settings = get_settings()
    runtime = getattr(request.app.state, "runtime", None)
    body = {
        "status": "ok",
        "correlation_id": getattr(request.state, "correlation_id", None),
        "environment": settings.environment,
        "version": settings.version,
        "activeConnections": 0,
        "counters": {},
        "timings": {},
        "pendingListenerTasks": 0,
        "deadLetters": 0,
    }
    if runtime is not None:
        body["activeConnections"] = runtime.gateway.active_connections
        exported = runtime.metrics.export_metrics()
        body["counters"] = exported["counters"]
        body["timings"] = exported["timings"]
        body["pendingListenerTasks"] = runtime.emitter.pending_tasks
        body["deadLetters"] = runtime.journal.dead_letter_count
    return body
