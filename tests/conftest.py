"""Shared fixtures: per-test SQLite file (aiosqlite) repositories, settings and a fully wired runtime."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from carshare_activity.config.settings import AppSettings
from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivityRecord,
    ActivitySeverity,
    ActivitySource,
)
from carshare_activity.infrastructure.archive.file_archive import FileArchiveSink
from carshare_activity.infrastructure.database.activity_repository_db import DbActivityRepository
from carshare_activity.infrastructure.database.event_log_repository_db import DbEventLogRepository
from carshare_activity.infrastructure.database.metric_repository_db import DbMetricRepository
from carshare_activity.infrastructure.database.session import build_session_factory, create_tables
from carshare_activity.runtime import ActivityRuntime


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite per test; concurrent sessions (emitter listeners) each get their own connection."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'activity.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def activity_repo(session_factory):
    return DbActivityRepository(session_factory)


@pytest.fixture
def event_log_repo(session_factory):
    return DbEventLogRepository(session_factory)


@pytest.fixture
def metric_repo(session_factory):
    return DbMetricRepository(session_factory)


@pytest.fixture
def archive(tmp_path):
    return FileArchiveSink(tmp_path / "archives")


@pytest.fixture
def test_settings(tmp_path):
    return AppSettings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'activity.db'}",
        stream_heartbeat_interval_seconds=3600,
        retention_archive_dir=str(tmp_path / "archives"),
    )


@pytest.fixture
async def runtime(test_settings, activity_repo, event_log_repo, metric_repo, archive):
    rt = ActivityRuntime.build(
        test_settings,
        activity_repo,
        event_log_repo,
        metric_repo,
        archive=archive,
    )
    yield rt
    await rt.shutdown()


@pytest.fixture
def make_record():
    """Factory for ActivityRecords; `age` is how far in the past the timestamp lies unless `timestamp` is given."""

    def _make(
        action=ActivityAction.READ,
        resource="car",
        severity=ActivitySeverity.INFO,
        actor_id="u1",
        age=timedelta(0),
        timestamp=None,
        **fields,
    ):
        return ActivityRecord(
            id=str(uuid.uuid4()),
            action=action,
            resource=resource,
            severity=severity,
            timestamp=timestamp or datetime.now(timezone.utc) - age,
            actor_id=actor_id,
            source=ActivitySource.WEB,
            **fields,
        )

    return _make
