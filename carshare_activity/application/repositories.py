"""Repository protocols. Application layer depends on these; infrastructure implements them."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from carshare_activity.domain.models.activity import (
    ActivityAction,
    ActivityRecord,
    ActivitySeverity,
    EventLogEntry,
    EventStatus,
    MetricRecord,
)


@dataclass(frozen=True)
class ActivityQuery:
    """
    Filter over activity records. Every field is optional; set fields are AND-ed.
    `since`/`until` are inclusive bounds, `before` is an exclusive cutoff (retention).
    """

    actor_id: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    before: Optional[datetime] = None
    actions: Optional[Sequence[ActivityAction]] = None
    resources: Optional[Sequence[str]] = None
    severities: Optional[Sequence[ActivitySeverity]] = None
    exclude_actor_ids: Optional[Sequence[str]] = None


class ActivityRepository(Protocol):
    """Durable store of activity records. Records are append-only; deletes happen only via retention."""

    async def save(self, record: ActivityRecord) -> ActivityRecord:
        ...

    async def find(
        self,
        query: ActivityQuery,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ActivityRecord]:
        """Return matching records, newest first."""
        ...

    async def count(self, query: ActivityQuery) -> int:
        ...

    async def count_by(self, field: str, query: ActivityQuery) -> Dict[str, int]:
        """Group matching records by 'action', 'resource' or 'severity'; returns value -> count."""
        ...

    async def count_distinct(self, field: str, query: ActivityQuery) -> int:
        """Count distinct non-null 'actor_id' or 'resource_id' values among matching records."""
        ...

    async def delete(self, query: ActivityQuery) -> int:
        """Delete matching records; returns number deleted."""
        ...


class EventLogRepository(Protocol):
    """Journal of non-activity domain events."""

    async def save(self, entry: EventLogEntry) -> None:
        ...

    async def count_terminal_before(self, cutoff: datetime) -> int:
        ...

    async def delete_terminal_before(self, cutoff: datetime) -> int:
        ...

    async def delete_before(self, cutoff: datetime) -> int:
        """Delete every journaled event timestamped before cutoff, whatever its status."""
        ...

    async def count_by_status(self) -> Dict[EventStatus, int]:
        ...


class MetricRepository(Protocol):
    """Aggregated metrics, one row per (metric_type, period, period_start, period_end)."""

    async def upsert(self, metric: MetricRecord) -> bool:
        """Insert or overwrite the row for the metric's key. Returns True if a row was created."""
        ...

    async def find(self, metric_type: Optional[str] = None) -> List[MetricRecord]:
        ...

    async def count_ended_before(self, cutoff: datetime) -> int:
        ...

    async def delete_ended_before(self, cutoff: datetime) -> int:
        ...

    async def summary(self) -> Dict[str, Any]:
        """Return {'total': int, 'by_type': {metric_type: count}, 'latest_period_end': datetime | None}."""
        ...


@runtime_checkable
class ArchiveSink(Protocol):
    """Destination for records archived by retention before they are deleted."""

    async def write(self, name: str, document: Dict[str, Any], location: Optional[str] = None) -> str:
        """Persist one archive document as a new file under `location`; returns where it was written."""
        ...
