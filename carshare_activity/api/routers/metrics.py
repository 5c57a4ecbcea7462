"""Metrics admin router: POST /admin/activity/metrics (generate), GET /admin/activity/metrics (summary)."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends

from carshare_activity.api.dependencies import get_metrics_generator, require_capability
from carshare_activity.application.metrics_generator import MetricsGenerator
from carshare_activity.domain.schemas.activity import MetricsGenerateRequest
from carshare_activity.security.rbac import Capability, Principal

router = APIRouter()


@router.post("/metrics")
async def generate_metrics(
    principal: Annotated[Principal, Depends(require_capability(Capability.GENERATE_METRICS))],
    generator: Annotated[MetricsGenerator, Depends(get_metrics_generator)],
    body: Optional[MetricsGenerateRequest] = None,
):
    """Aggregate one UTC day (default: yesterday) into daily metric rows. Re-running a day overwrites it."""
    records = await generator.generate_daily_metrics(body.day if body else None)
    return {
        "success": True,
        "generated": len(records),
        "metrics": [record.to_dict() for record in records],
    }


@router.get("/metrics")
async def get_metrics_summary(
    principal: Annotated[Principal, Depends(require_capability(Capability.GENERATE_METRICS))],
    generator: Annotated[MetricsGenerator, Depends(get_metrics_generator)],
):
    summary = await generator.get_metrics_summary()
    latest = summary["latest_period_end"]
    return {
        "totalMetrics": summary["total"],
        "metricTypes": [
            {"metricType": metric_type, "count": count}
            for metric_type, count in summary["by_type"].items()
        ],
        "latestPeriodEnd": latest.isoformat() if latest else None,
    }
