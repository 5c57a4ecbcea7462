"""Composition root: builds the engine, repositories and services once per process (or per job)."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from carshare_activity.application.activity_tracker import ActivityTracker, TrackingConfig
from carshare_activity.application.event_emitter import EventEmitter
from carshare_activity.application.event_factory import EventFactory
from carshare_activity.application.event_journal import EventJournal
from carshare_activity.application.metrics_generator import MetricsGenerator
from carshare_activity.application.repositories import (
    ActivityRepository,
    ArchiveSink,
    EventLogRepository,
    MetricRepository,
)
from carshare_activity.application.retention_service import RetentionService
from carshare_activity.application.stream_gateway import ConnectionRegistry, StreamGateway
from carshare_activity.config.settings import AppSettings
from carshare_activity.infrastructure.archive.file_archive import FileArchiveSink
from carshare_activity.infrastructure.database.activity_repository_db import DbActivityRepository
from carshare_activity.infrastructure.database.event_log_repository_db import DbEventLogRepository
from carshare_activity.infrastructure.database.metric_repository_db import DbMetricRepository
from carshare_activity.infrastructure.database.session import build_engine, build_session_factory
from carshare_activity.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class ActivityRuntime:
    settings: AppSettings
    metrics: MetricsCollector
    emitter: EventEmitter
    tracker: ActivityTracker
    journal: EventJournal
    gateway: StreamGateway
    retention: RetentionService
    metrics_generator: MetricsGenerator
    engine: Optional[AsyncEngine] = None

    @classmethod
    def build(
        cls,
        settings: AppSettings,
        activities: ActivityRepository,
        event_log: EventLogRepository,
        metric_store: MetricRepository,
        *,
        archive: Optional[ArchiveSink] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> "ActivityRuntime":
        metrics = MetricsCollector()
        emitter = EventEmitter(metrics=metrics)
        tracker = ActivityTracker(
            activities,
            emitter,
            factory=EventFactory(),
            config=TrackingConfig.from_settings(settings),
            metrics=metrics,
        )
        journal = EventJournal(event_log)
        journal.register(emitter)
        gateway = StreamGateway(
            emitter,
            ConnectionRegistry(),
            heartbeat_interval=settings.stream_heartbeat_interval_seconds,
            sweep_interval=settings.stream_sweep_interval_seconds,
            stale_after=settings.stream_stale_after_seconds,
            max_pending=settings.stream_max_pending_messages,
            metrics=metrics,
        )
        retention = RetentionService(
            activities,
            event_log,
            metric_store,
            archive or FileArchiveSink(settings.retention_archive_dir),
            event_journal_days=settings.retention_event_journal_days,
            metrics_days=settings.retention_metrics_days,
            metrics=metrics,
        )
        metrics_generator = MetricsGenerator(
            activities,
            metric_store,
            enabled=settings.metrics_generation_enabled,
            metrics=metrics,
        )
        return cls(
            settings=settings,
            metrics=metrics,
            emitter=emitter,
            tracker=tracker,
            journal=journal,
            gateway=gateway,
            retention=retention,
            metrics_generator=metrics_generator,
            engine=engine,
        )

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ActivityRuntime":
        engine = build_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.debug,
        )
        session_factory = build_session_factory(engine)
        return cls.build(
            settings,
            DbActivityRepository(session_factory),
            DbEventLogRepository(session_factory),
            DbMetricRepository(session_factory),
            engine=engine,
        )

    async def start(self) -> None:
        self.gateway.start()
        logger.info("runtime_started", extra={"environment": self.settings.environment})

    async def shutdown(self) -> None:
        await self.gateway.shutdown()
        await self.emitter.drain()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("runtime_stopped")
