"""Daily metrics aggregation over activity records. Idempotent per period via upsert."""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from carshare_activity.application.repositories import (
    ActivityQuery,
    ActivityRepository,
    MetricRepository,
)
from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivitySeverity,
    MetricPeriod,
    MetricRecord,
)
from carshare_activity.observability.metrics import MetricsCollector

COUNT = "count"
PERCENTAGE = "percentage"


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def day_bounds(day: date) -> tuple:
    """[00:00:00, 23:59:59.999999] of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(day, time.max, tzinfo=timezone.utc)
    return start, end


class MetricsGenerator:
    def __init__(
        self,
        activities: ActivityRepository,
        metrics_repo: MetricRepository,
        *,
        enabled: bool = True,
        today: Callable[[], date] = _utc_today,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._activities = activities
        self._metrics_repo = metrics_repo
        self._enabled = enabled
        self._today = today
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)

    async def generate_daily_metrics(self, day: Optional[date] = None) -> List[MetricRecord]:
        """
        Aggregate one UTC day (default: yesterday) and upsert every metric for it.
        Running it again for the same day overwrites the same rows.
        """
        if not self._enabled:
            self._logger.info("metrics_generation_disabled")
            return []

        target = day or (self._today() - timedelta(days=1))
        start, end = day_bounds(target)
        self._logger.info("metrics_generation_started", extra={"day": target.isoformat()})

        records: List[MetricRecord] = []
        records += await self._login_metrics(start, end)
        records += await self._activity_metrics(start, end)
        records += await self._booking_metrics(start, end)
        records += await self._car_view_metrics(start, end)
        records += await self._error_metrics(start, end)

        created = 0
        for record in records:
            if await self._metrics_repo.upsert(record):
                created += 1
        if self._metrics is not None:
            self._metrics.increment("metrics_generated", len(records))
        self._logger.info(
            "metrics_generation_completed",
            extra={
                "day": target.isoformat(),
                "metrics": len(records),
                "inserted": created,
                "updated": len(records) - created,
            },
        )
        return records

    async def get_metrics_summary(self) -> Dict[str, Any]:
        return await self._metrics_repo.summary()

    def _metric(
        self,
        metric_type: str,
        value: float,
        start: datetime,
        end: datetime,
        unit: str = COUNT,
        dimensions: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MetricRecord:
        return MetricRecord(
            metric_type=metric_type,
            value=float(value),
            period=MetricPeriod.DAILY,
            period_start=start,
            period_end=end,
            unit=unit,
            dimensions=dimensions,
            metadata=metadata,
        )

    async def _login_metrics(self, start: datetime, end: datetime) -> List[MetricRecord]:
        logins = ActivityQuery(since=start, until=end, actions=[ActivityAction.LOGIN])
        login_count = await self._activities.count(logins)
        unique_users = await self._activities.count_distinct("actor_id", logins)
        return [
            self._metric("daily_logins", login_count, start, end, metadata={"uniqueUsers": unique_users}),
            self._metric("daily_active_users", unique_users, start, end),
        ]

    async def _activity_metrics(self, start: datetime, end: datetime) -> List[MetricRecord]:
        window = ActivityQuery(since=start, until=end)
        total = await self._activities.count(window)
        by_action = await self._activities.count_by("action", window)
        records = [
            self._metric("total_activities", total, start, end, metadata={"byAction": by_action})
        ]
        for action, count in sorted(by_action.items()):
            records.append(
                self._metric(
                    f"activities_{action.lower()}",
                    count,
                    start,
                    end,
                    dimensions={"action": action},
                )
            )
        return records

    async def _booking_metrics(self, start: datetime, end: datetime) -> List[MetricRecord]:
        bookings = await self._activities.count(
            ActivityQuery(
                since=start,
                until=end,
                resources=["booking"],
                actions=[ActivityAction.BOOK, ActivityAction.CREATE],
            )
        )
        views = await self._activities.count(
            ActivityQuery(
                since=start, until=end, resources=["booking"], actions=[ActivityAction.READ]
            )
        )
        records = [self._metric("daily_bookings", bookings, start, end)]
        if views > 0:
            records.append(
                self._metric(
                    "booking_conversion_rate",
                    bookings / views * 100,
                    start,
                    end,
                    unit=PERCENTAGE,
                    metadata={"bookings": bookings, "views": views},
                )
            )
        return records

    async def _car_view_metrics(self, start: datetime, end: datetime) -> List[MetricRecord]:
        views = ActivityQuery(
            since=start, until=end, resources=["car"], actions=[ActivityAction.READ]
        )
        count = await self._activities.count(views)
        unique_cars = await self._activities.count_distinct("resource_id", views)
        return [self._metric("car_views", count, start, end, metadata={"uniqueCars": unique_cars})]

    async def _error_metrics(self, start: datetime, end: datetime) -> List[MetricRecord]:
        errors = await self._activities.count(
            ActivityQuery(
                since=start,
                until=end,
                severities=[ActivitySeverity.ERROR, ActivitySeverity.CRITICAL],
            )
        )
        total = await self._activities.count(ActivityQuery(since=start, until=end))
        records = [self._metric("daily_errors", errors, start, end)]
        if total > 0:
            records.append(
                self._metric(
                    "error_rate",
                    errors / total * 100,
                    start,
                    end,
                    unit=PERCENTAGE,
                    metadata={"errors": errors, "total": total},
                )
            )
        return records
