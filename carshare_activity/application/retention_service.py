"""Retention/cleanup: policy-driven deletion and archival of activity records, plus journal and metric sweeps."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from carshare_activity.application.exceptions import ArchiveFailureError
from carshare_activity.application.repositories import (
    ActivityQuery,
    ActivityRepository,
    ArchiveSink,
    EventLogRepository,
    MetricRepository,
)
from carshare_activity.domain.exceptions import (
    DomainValidationError,
    DuplicateRetentionPolicyError,
    RetentionPolicyNotFoundError,
)
from carshare_activity.domain.models.activity import ActivityAction, ActivityRecord, ActivitySeverity
from carshare_activity.domain.validators.activity_validator import (
    MIN_RETENTION_DAYS,
    validate_retention_policy,
)
from carshare_activity.observability.metrics import MetricsCollector

BYTES_PER_RECORD = 2048
TOP_ACTIONS = 10

ActorLookup = Callable[[Sequence[str]], Awaitable[Dict[str, Dict[str, Any]]]]


@dataclass(frozen=True)
class RetentionConditions:
    severities: Tuple[ActivitySeverity, ...] = ()
    actions: Tuple[ActivityAction, ...] = ()
    resources: Tuple[str, ...] = ()
    exclude_users: Tuple[str, ...] = ()

    @property
    def specificity(self) -> int:
        """Number of condition dimensions that are set."""
        return sum(1 for dim in (self.severities, self.actions, self.resources, self.exclude_users) if dim)


@dataclass(frozen=True)
class RetentionPolicy:
    name: str
    retention_days: int
    description: str = ""
    conditions: RetentionConditions = field(default_factory=RetentionConditions)
    archive_before_delete: bool = False
    archive_location: Optional[str] = None

    @property
    def specificity(self) -> int:
        return self.conditions.specificity

    def query(self, now: datetime) -> ActivityQuery:
        c = self.conditions
        return ActivityQuery(
            before=now - timedelta(days=self.retention_days),
            severities=c.severities or None,
            actions=c.actions or None,
            resources=c.resources or None,
            exclude_actor_ids=c.exclude_users or None,
        )


@dataclass
class CleanupStats:
    processed: int = 0
    deleted: int = 0
    archived: int = 0
    space_saved_mb: float = 0.0
    execution_time_ms: int = 0
    errors: List[str] = field(default_factory=list)


DEFAULT_POLICIES: Tuple[RetentionPolicy, ...] = (
    RetentionPolicy(
        name="debug_logs_cleanup",
        description="Remove debug-level logs after 7 days",
        retention_days=7,
        conditions=RetentionConditions(severities=(ActivitySeverity.DEBUG,)),
    ),
    RetentionPolicy(
        name="info_logs_cleanup",
        description="Remove info-level logs after 30 days",
        retention_days=30,
        conditions=RetentionConditions(severities=(ActivitySeverity.INFO,)),
    ),
    RetentionPolicy(
        name="warn_logs_retention",
        description="Remove warning logs after 90 days",
        retention_days=90,
        conditions=RetentionConditions(severities=(ActivitySeverity.WARN,)),
    ),
    RetentionPolicy(
        name="error_logs_retention",
        description="Archive and delete error logs after 365 days",
        retention_days=365,
        conditions=RetentionConditions(
            severities=(ActivitySeverity.ERROR, ActivitySeverity.CRITICAL)
        ),
        archive_before_delete=True,
    ),
    RetentionPolicy(
        name="security_events_retention",
        description="Keep security events for 1 year",
        retention_days=365,
        conditions=RetentionConditions(
            actions=(
                ActivityAction.LOGIN,
                ActivityAction.LOGOUT,
                ActivityAction.ADMIN_LOGIN,
                ActivityAction.USER_PROMOTE,
                ActivityAction.USER_DEMOTE,
            )
        ),
    ),
    RetentionPolicy(
        name="business_events_retention",
        description="Keep business events for 2 years",
        retention_days=730,
        conditions=RetentionConditions(
            actions=(
                ActivityAction.BOOK,
                ActivityAction.CANCEL_BOOKING,
                ActivityAction.CONFIRM_BOOKING,
                ActivityAction.COMPLETE_BOOKING,
            )
        ),
    ),
    RetentionPolicy(
        name="general_cleanup",
        description="Default cleanup for all other records after 90 days",
        retention_days=90,
    ),
)


def estimate_space_mb(record_count: int) -> float:
    return (record_count * BYTES_PER_RECORD) / (1024 * 1024)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RetentionService:
    """
    Runs policies most specific first; equal specificity keeps declaration order. Policies are not
    mutually exclusive: a record matching several is removed by whichever runs first.
    """

    def __init__(
        self,
        activities: ActivityRepository,
        event_log: EventLogRepository,
        metrics_repo: MetricRepository,
        archive: ArchiveSink,
        *,
        policies: Optional[Sequence[RetentionPolicy]] = None,
        event_journal_days: int = 1,
        metrics_days: int = 365,
        actor_lookup: Optional[ActorLookup] = None,
        clock: Callable[[], datetime] = _utc_now,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._activities = activities
        self._event_log = event_log
        self._metrics_repo = metrics_repo
        self._archive = archive
        self._policies: List[RetentionPolicy] = list(
            DEFAULT_POLICIES if policies is None else policies
        )
        self._event_journal_days = event_journal_days
        self._metrics_days = metrics_days
        self._actor_lookup = actor_lookup
        self._clock = clock
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)

    # --- policy registry ---

    def get_policies(self) -> List[RetentionPolicy]:
        """Policies in execution order."""
        return sorted(self._policies, key=lambda p: p.specificity, reverse=True)

    def add_policy(self, policy: RetentionPolicy) -> None:
        validate_retention_policy(policy.name, policy.retention_days)
        if any(p.name == policy.name for p in self._policies):
            raise DuplicateRetentionPolicyError(
                f"Policy with name '{policy.name}' already exists"
            )
        self._policies.append(policy)
        self._logger.info(
            "retention_policy_added",
            extra={"policy": policy.name, "retention_days": policy.retention_days},
        )

    def remove_policy(self, name: str) -> RetentionPolicy:
        for index, policy in enumerate(self._policies):
            if policy.name == name:
                del self._policies[index]
                self._logger.info("retention_policy_removed", extra={"policy": name})
                return policy
        raise RetentionPolicyNotFoundError(f"Policy '{name}' not found")

    # --- cleanup ---

    async def execute_cleanup(self, dry_run: bool = False) -> CleanupStats:
        started = time.perf_counter()
        now = self._clock()
        stats = CleanupStats()

        for policy in self.get_policies():
            try:
                await self._run_policy(policy, now, dry_run, stats)
            except Exception as e:
                message = f"Policy '{policy.name}' failed: {e}"
                stats.errors.append(message)
                self._logger.error(
                    "retention_policy_failed", extra={"policy": policy.name, "error": str(e)}
                )

        try:
            await self._sweep_event_journal(now, dry_run, stats)
        except Exception as e:
            stats.errors.append(f"Event journal cleanup failed: {e}")
            self._logger.error("event_journal_cleanup_failed", extra={"error": str(e)})

        try:
            await self._sweep_metrics(now, dry_run, stats)
        except Exception as e:
            stats.errors.append(f"Metrics cleanup failed: {e}")
            self._logger.error("metrics_cleanup_failed", extra={"error": str(e)})

        stats.execution_time_ms = int((time.perf_counter() - started) * 1000)
        if self._metrics is not None:
            self._metrics.increment("retention_runs")
            self._metrics.increment("retention_records_deleted", stats.deleted)
        self._logger.info(
            "retention_cleanup_completed",
            extra={
                "dry_run": dry_run,
                "processed": stats.processed,
                "deleted": stats.deleted,
                "archived": stats.archived,
                "errors": len(stats.errors),
                "execution_time_ms": stats.execution_time_ms,
            },
        )
        return stats

    async def _run_policy(
        self,
        policy: RetentionPolicy,
        now: datetime,
        dry_run: bool,
        stats: CleanupStats,
    ) -> None:
        query = policy.query(now)
        matched = await self._activities.count(query)
        stats.processed += matched
        if matched == 0:
            return
        self._logger.info(
            "retention_policy_matched",
            extra={
                "policy": policy.name,
                "matched": matched,
                "cutoff": query.before.isoformat(),
                "dry_run": dry_run,
            },
        )
        if dry_run:
            return

        if policy.archive_before_delete:
            records = await self._activities.find(query)
            await self._write_archive(policy, records, now)
            stats.archived += len(records)

        deleted = await self._activities.delete(query)
        stats.deleted += deleted
        stats.space_saved_mb += estimate_space_mb(deleted)
        self._logger.info(
            "retention_policy_applied", extra={"policy": policy.name, "deleted": deleted}
        )

    async def _write_archive(
        self,
        policy: RetentionPolicy,
        records: List[ActivityRecord],
        now: datetime,
    ) -> str:
        actors: Dict[str, Dict[str, Any]] = {}
        actor_ids = sorted({r.actor_id for r in records if r.actor_id})
        if self._actor_lookup is not None and actor_ids:
            actors = await self._actor_lookup(actor_ids)

        def _with_actor(record: ActivityRecord) -> Dict[str, Any]:
            data = record.to_dict()
            if record.actor_id:
                data["actor"] = {"id": record.actor_id, **actors.get(record.actor_id, {})}
            else:
                data["actor"] = None
            return data

        document = {
            "policy": policy.name,
            "archivedAt": now.isoformat(),
            "recordCount": len(records),
            "records": [_with_actor(r) for r in records],
        }
        try:
            location = await self._archive.write(policy.name, document, policy.archive_location)
        except Exception as e:
            raise ArchiveFailureError(f"Archive for policy '{policy.name}' failed: {e}") from e
        self._logger.info(
            "retention_records_archived",
            extra={"policy": policy.name, "archived": len(records), "location": location},
        )
        return location

    async def _sweep_event_journal(self, now: datetime, dry_run: bool, stats: CleanupStats) -> None:
        cutoff = now - timedelta(days=self._event_journal_days)
        matched = await self._event_log.count_terminal_before(cutoff)
        stats.processed += matched
        if matched and not dry_run:
            stats.deleted += await self._event_log.delete_terminal_before(cutoff)

    async def _sweep_metrics(self, now: datetime, dry_run: bool, stats: CleanupStats) -> None:
        cutoff = now - timedelta(days=self._metrics_days)
        matched = await self._metrics_repo.count_ended_before(cutoff)
        stats.processed += matched
        if matched and not dry_run:
            stats.deleted += await self._metrics_repo.delete_ended_before(cutoff)

    async def purge_older_than(self, days: int) -> Dict[str, int]:
        """Emergency purge of every activity, journaled event and metric older than `days`."""
        if days is None or days < MIN_RETENTION_DAYS:
            raise DomainValidationError(f"olderThanDays must be >= {MIN_RETENTION_DAYS}")
        cutoff = self._clock() - timedelta(days=days)
        result = {
            "activities": await self._activities.delete(ActivityQuery(before=cutoff)),
            "events": await self._event_log.delete_before(cutoff),
            "metrics": await self._metrics_repo.delete_ended_before(cutoff),
        }
        self._logger.warning(
            "emergency_purge_completed", extra={"older_than_days": days, **result}
        )
        return result

    # --- reporting ---

    async def get_retention_stats(self) -> Dict[str, Any]:
        now = self._clock()
        day = timedelta(days=1)
        buckets = (
            ("Last 24 hours", ActivityQuery(since=now - day)),
            ("Last 7 days", ActivityQuery(since=now - 7 * day, before=now - day)),
            ("Last 30 days", ActivityQuery(since=now - 30 * day, before=now - 7 * day)),
            ("Last 90 days", ActivityQuery(since=now - 90 * day, before=now - 30 * day)),
            ("Older than 90 days", ActivityQuery(before=now - 90 * day)),
        )
        everything = ActivityQuery()
        total = await self._activities.count(everything)
        by_age = [
            {"ageRange": label, "count": await self._activities.count(query)}
            for label, query in buckets
        ]
        by_severity = await self._activities.count_by("severity", everything)
        by_action = await self._activities.count_by("action", everything)
        top_actions = sorted(by_action.items(), key=lambda item: item[1], reverse=True)[:TOP_ACTIONS]
        return {
            "totalRecords": total,
            "recordsByAge": by_age,
            "recordsBySeverity": [
                {"severity": severity, "count": count} for severity, count in by_severity.items()
            ],
            "recordsByAction": [{"action": action, "count": count} for action, count in top_actions],
            "estimatedSizeMB": estimate_space_mb(total),
        }
