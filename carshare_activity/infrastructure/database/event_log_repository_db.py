"""DB-backed event journal (activity_events table)."""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carshare_activity.domain.models.activity import EventLogEntry, EventStatus
from carshare_activity.infrastructure.database.models import ActivityEventLog
from carshare_activity.infrastructure.database.utc import to_utc, utc_now


def _terminal_before(cutoff: datetime) -> Any:
    """COMPLETED events age from processed_at; FAILED and DISCARDED from their last update."""
    cutoff = to_utc(cutoff)
    return or_(
        and_(
            ActivityEventLog.status == EventStatus.COMPLETED.value,
            ActivityEventLog.processed_at < cutoff,
        ),
        and_(
            ActivityEventLog.status.in_(
                [EventStatus.FAILED.value, EventStatus.DISCARDED.value]
            ),
            ActivityEventLog.updated_at < cutoff,
        ),
    )


class DbEventLogRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, entry: EventLogEntry) -> None:
        touched = to_utc(entry.processed_at) or utc_now()
        orm = ActivityEventLog(
            id=entry.id,
            event_type=entry.event_type,
            event_category=entry.category.value,
            source=entry.source,
            source_id=entry.source_id,
            payload=entry.payload,
            correlation_id=entry.correlation_id,
            status=entry.status.value,
            processed_at=to_utc(entry.processed_at),
            last_error=entry.last_error,
            timestamp=to_utc(entry.timestamp),
            updated_at=touched,
        )
        async with self._session_factory() as session:
            # merge: a FAILED entry may replace a partially written COMPLETED one.
            await session.merge(orm)
            await session.commit()

    async def count_terminal_before(self, cutoff: datetime) -> int:
        stmt = select(func.count()).select_from(ActivityEventLog).where(_terminal_before(cutoff))
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one()

    async def delete_terminal_before(self, cutoff: datetime) -> int:
        stmt = delete(ActivityEventLog).where(_terminal_before(cutoff))
        async with self._session_factory() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()
            return result.rowcount or 0

    async def delete_before(self, cutoff: datetime) -> int:
        stmt = delete(ActivityEventLog).where(ActivityEventLog.timestamp < to_utc(cutoff))
        async with self._session_factory() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()
            return result.rowcount or 0

    async def count_by_status(self) -> Dict[EventStatus, int]:
        stmt = select(ActivityEventLog.status, func.count()).group_by(ActivityEventLog.status)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return {EventStatus(status): count for status, count in result.all()}
