"""DB-backed metrics repository (activity_metrics table). Upsert is find-then-update on the period key."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carshare_activity.domain.models.activity import MetricPeriod, MetricRecord
from carshare_activity.infrastructure.database.models import ActivityMetric
from carshare_activity.infrastructure.database.utc import to_utc, utc_now


def _to_record(orm: ActivityMetric) -> MetricRecord:
    return MetricRecord(
        metric_type=orm.metric_type,
        value=orm.metric_value,
        period=MetricPeriod(orm.period),
        period_start=to_utc(orm.period_start),
        period_end=to_utc(orm.period_end),
        unit=orm.metric_unit,
        dimensions=orm.dimensions,
        metadata=orm.metadata_,
    )


class DbMetricRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, metric: MetricRecord) -> bool:
        start = to_utc(metric.period_start)
        end = to_utc(metric.period_end)
        stmt = select(ActivityMetric).where(
            ActivityMetric.metric_type == metric.metric_type,
            ActivityMetric.period == metric.period.value,
            ActivityMetric.period_start == start,
            ActivityMetric.period_end == end,
        )
        async with self._session_factory() as session:
            existing = (await session.execute(stmt)).scalar_one_or_none()
            if existing is not None:
                existing.metric_value = metric.value
                existing.metric_unit = metric.unit
                existing.dimensions = metric.dimensions
                existing.metadata_ = metric.metadata
                existing.updated_at = utc_now()
            else:
                session.add(
                    ActivityMetric(
                        metric_type=metric.metric_type,
                        metric_value=metric.value,
                        metric_unit=metric.unit,
                        dimensions=metric.dimensions,
                        period=metric.period.value,
                        period_start=start,
                        period_end=end,
                        metadata_=metric.metadata,
                    )
                )
            await session.commit()
            return existing is None

    async def find(self, metric_type: Optional[str] = None) -> List[MetricRecord]:
        stmt = select(ActivityMetric).order_by(
            ActivityMetric.period_start.desc(), ActivityMetric.metric_type
        )
        if metric_type is not None:
            stmt = stmt.where(ActivityMetric.metric_type == metric_type)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]

    async def count_ended_before(self, cutoff: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(ActivityMetric)
            .where(ActivityMetric.period_end < to_utc(cutoff))
        )
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one()

    async def delete_ended_before(self, cutoff: datetime) -> int:
        stmt = delete(ActivityMetric).where(ActivityMetric.period_end < to_utc(cutoff))
        async with self._session_factory() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()
            return result.rowcount or 0

    async def summary(self) -> Dict[str, Any]:
        async with self._session_factory() as session:
            total = (
                await session.execute(select(func.count()).select_from(ActivityMetric))
            ).scalar_one()
            by_type = (
                await session.execute(
                    select(ActivityMetric.metric_type, func.count())
                    .group_by(ActivityMetric.metric_type)
                    .order_by(func.count().desc())
                )
            ).all()
            latest = (
                await session.execute(select(func.max(ActivityMetric.period_end)))
            ).scalar_one()
        return {
            "total": total,
            "by_type": {metric_type: count for metric_type, count in by_type},
            "latest_period_end": to_utc(latest),
        }
