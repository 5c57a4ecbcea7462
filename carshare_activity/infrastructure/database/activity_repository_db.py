"""DB-backed activity repository (user_activities table)."""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carshare_activity.application.repositories import ActivityQuery
from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivityRecord,
    ActivitySeverity,
    ActivitySource,
)
from carshare_activity.infrastructure.database.models import UserActivity
from carshare_activity.infrastructure.database.utc import to_utc

_GROUP_COLUMNS = {
    "action": UserActivity.action,
    "resource": UserActivity.resource,
    "severity": UserActivity.severity,
}
_DISTINCT_COLUMNS = {
    "actor_id": UserActivity.actor_id,
    "resource_id": UserActivity.resource_id,
}


def _values(items) -> List[Any]:
    return [getattr(item, "value", item) for item in items]


def _conditions(query: ActivityQuery) -> List[Any]:
    conditions: List[Any] = []
    if query.actor_id is not None:
        conditions.append(UserActivity.actor_id == query.actor_id)
    if query.since is not None:
        conditions.append(UserActivity.timestamp >= to_utc(query.since))
    if query.until is not None:
        conditions.append(UserActivity.timestamp <= to_utc(query.until))
    if query.before is not None:
        conditions.append(UserActivity.timestamp < to_utc(query.before))
    if query.actions:
        conditions.append(UserActivity.action.in_(_values(query.actions)))
    if query.resources:
        conditions.append(UserActivity.resource.in_(list(query.resources)))
    if query.severities:
        conditions.append(UserActivity.severity.in_(_values(query.severities)))
    if query.exclude_actor_ids:
        # Records without an actor are never protected by an exclusion list.
        conditions.append(
            or_(
                UserActivity.actor_id.is_(None),
                UserActivity.actor_id.notin_(list(query.exclude_actor_ids)),
            )
        )
    return conditions


def _to_orm(record: ActivityRecord) -> UserActivity:
    return UserActivity(
        id=record.id,
        actor_id=record.actor_id,
        session_id=record.session_id,
        action=record.action.value,
        resource=record.resource,
        resource_id=record.resource_id,
        description=record.description,
        ip_address=record.ip_address,
        user_agent=record.user_agent,
        referrer=record.referrer,
        method=record.method,
        endpoint=record.endpoint,
        request_data=record.request_data,
        response_data=record.response_data,
        status_code=record.status_code,
        metadata_=record.metadata,
        tags=list(record.tags),
        severity=record.severity.value,
        duration_ms=record.duration_ms,
        source=record.source.value if record.source else None,
        timestamp=to_utc(record.timestamp),
    )


def _to_record(orm: UserActivity) -> ActivityRecord:
    return ActivityRecord(
        id=orm.id,
        action=ActivityAction(orm.action),
        resource=orm.resource,
        severity=ActivitySeverity(orm.severity),
        timestamp=to_utc(orm.timestamp),
        actor_id=orm.actor_id,
        session_id=orm.session_id,
        resource_id=orm.resource_id,
        description=orm.description,
        source=ActivitySource(orm.source) if orm.source else None,
        ip_address=orm.ip_address,
        user_agent=orm.user_agent,
        referrer=orm.referrer,
        method=orm.method,
        endpoint=orm.endpoint,
        status_code=orm.status_code,
        duration_ms=orm.duration_ms,
        request_data=orm.request_data,
        response_data=orm.response_data,
        metadata=orm.metadata_,
        tags=tuple(orm.tags or ()),
    )


class DbActivityRepository:
    """Implements ActivityRepository. One session per operation from the injected factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, record: ActivityRecord) -> ActivityRecord:
        async with self._session_factory() as session:
            session.add(_to_orm(record))
            await session.commit()
        return record

    async def find(
        self,
        query: ActivityQuery,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ActivityRecord]:
        stmt = (
            select(UserActivity)
            .where(*_conditions(query))
            .order_by(UserActivity.timestamp.desc(), UserActivity.id)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]

    async def count(self, query: ActivityQuery) -> int:
        stmt = select(func.count()).select_from(UserActivity).where(*_conditions(query))
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one()

    async def count_by(self, field: str, query: ActivityQuery) -> Dict[str, int]:
        column = _GROUP_COLUMNS[field]
        stmt = (
            select(column, func.count())
            .where(*_conditions(query))
            .group_by(column)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return {value: count for value, count in result.all()}

    async def count_distinct(self, field: str, query: ActivityQuery) -> int:
        column = _DISTINCT_COLUMNS[field]
        stmt = select(func.count(func.distinct(column))).where(
            *_conditions(query), column.is_not(None)
        )
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one()

    async def delete(self, query: ActivityQuery) -> int:
        stmt = delete(UserActivity).where(*_conditions(query))
        async with self._session_factory() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()
            return result.rowcount or 0
