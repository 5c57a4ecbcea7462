"""
Real-time stream gateway. Holds live admin connections in an injected registry, fans out
published events through per-connection filters and serializes them as Server-Sent Events.
Connections are process-local: events published on another instance are not seen here.
"""

import asyncio
import contextlib
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Protocol,
)

from carshare_activity.application.event_emitter import EventEmitter, EventListener
from carshare_activity.application.exceptions import ConnectionClosedError
from carshare_activity.domain.models.events import ANY_EVENT, USER_ACTIVITY, DomainEvent
from carshare_activity.observability.metrics import MetricsCollector

CONNECTED_MESSAGE = "Real-time activity stream connected"
ADMIN_CLOSE_MESSAGE = "Connection closed by administrator"

_ACTIVITY_FIELDS = ("userId", "action", "resource", "resourceId", "description", "severity", "tags")
_CLOSE = object()


class ConnectionState(str, Enum):
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class MessageType(str, Enum):
    CONNECTION = "connection"
    HEARTBEAT = "heartbeat"
    ACTIVITY = "activity"
    NOTIFICATION = "notification"
    SYSTEM = "system"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalized(values: Optional[Iterable[str]], upper: bool = False) -> FrozenSet[str]:
    if not values:
        return frozenset()
    return frozenset(v.strip().upper() if upper else v.strip() for v in values if v and v.strip())


@dataclass(frozen=True)
class StreamFilters:
    """
    Per-connection allow-lists. An empty set allows everything for that dimension; a non-empty
    set drops events whose value is missing or not listed.
    """

    severities: FrozenSet[str] = frozenset()
    actions: FrozenSet[str] = frozenset()
    resources: FrozenSet[str] = frozenset()
    user_ids: FrozenSet[str] = frozenset()

    @classmethod
    def build(
        cls,
        severities: Optional[Iterable[str]] = None,
        actions: Optional[Iterable[str]] = None,
        resources: Optional[Iterable[str]] = None,
        user_ids: Optional[Iterable[str]] = None,
    ) -> "StreamFilters":
        return cls(
            severities=_normalized(severities, upper=True),
            actions=_normalized(actions, upper=True),
            resources=_normalized(resources),
            user_ids=_normalized(user_ids),
        )

    def allows(self, event: DomainEvent) -> bool:
        checks = (
            (self.severities, event.get("severity")),
            (self.actions, event.get("action")),
            (self.resources, event.get("resource")),
            (self.user_ids, event.actor_id),
        )
        for allowed, value in checks:
            if allowed and (value is None or str(value) not in allowed):
                return False
        return True


class StreamChannel(Protocol):
    """Write side of one live connection."""

    @property
    def closed(self) -> bool:
        ...

    def send(self, message: str) -> None:
        """Queue one frame. Raises ConnectionClosedError if the channel cannot take it."""
        ...

    def close(self) -> None:
        ...

    def messages(self) -> AsyncIterator[str]:
        ...


class QueueChannel:
    """Bounded in-memory channel. A reader that falls max_pending frames behind is cut off."""

    def __init__(self, max_pending: int = 256) -> None:
        self._max_pending = max_pending
        # One extra slot so the close marker always fits.
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending + 1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, message: str) -> None:
        if self._closed:
            raise ConnectionClosedError("Stream channel is closed")
        if self._queue.qsize() >= self._max_pending:
            raise ConnectionClosedError("Stream channel is full")
        self._queue.put_nowait(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSE)

    async def messages(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


@dataclass
class StreamConnection:
    id: str
    user_id: str
    filters: StreamFilters
    channel: StreamChannel
    last_heartbeat: float
    state: ConnectionState = ConnectionState.CONNECTING
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    heartbeat_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def listener_name(self) -> str:
        return f"stream:{self.id}"


class ConnectionRegistry:
    """Connection id -> connection. Owned by one StreamGateway for the life of the app."""

    def __init__(self) -> None:
        self._connections: Dict[str, StreamConnection] = {}

    def add(self, connection: StreamConnection) -> None:
        self._connections[connection.id] = connection

    def remove(self, connection_id: str) -> Optional[StreamConnection]:
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[StreamConnection]:
        return self._connections.get(connection_id)

    def snapshot(self) -> List[StreamConnection]:
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections


def format_sse(message: Dict[str, Any]) -> str:
    return f"data: {json.dumps(message, default=str)}\n\n"


def serialize_event(event: DomainEvent) -> Dict[str, Any]:
    """Envelope fields for every event; user.activity adds its fields, others carry the payload as details."""
    data: Dict[str, Any] = {
        "id": event.id,
        "type": str(event.type),
        "timestamp": event.timestamp.isoformat(),
        "correlationId": event.correlation_id,
        "metadata": event.metadata,
    }
    if event.type == USER_ACTIVITY:
        for key in _ACTIVITY_FIELDS:
            data[key] = event.get(key)
    else:
        data["details"] = dict(event.payload)
    return data


class StreamGateway:
    """
    Lifecycle per connection: CONNECTING -> OPEN -> CLOSED. A connection leaves the registry when
    the client goes away, a write fails, its heartbeat goes stale or an admin closes everything.
    """

    def __init__(
        self,
        emitter: EventEmitter,
        registry: Optional[ConnectionRegistry] = None,
        *,
        heartbeat_interval: float = 30.0,
        sweep_interval: float = 300.0,
        stale_after: float = 300.0,
        max_pending: int = 256,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._emitter = emitter
        self._registry = registry if registry is not None else ConnectionRegistry()
        self._heartbeat_interval = heartbeat_interval
        self._sweep_interval = sweep_interval
        self._stale_after = stale_after
        self._max_pending = max_pending
        self._clock = clock
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def active_connections(self) -> int:
        return len(self._registry)

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="stream-sweep")

    async def shutdown(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
        await self.close_all(reason="Server shutting down")

    async def connect(
        self,
        user_id: str,
        filters: Optional[StreamFilters] = None,
        channel: Optional[StreamChannel] = None,
    ) -> StreamConnection:
        connection = StreamConnection(
            id=uuid.uuid4().hex,
            user_id=user_id,
            filters=filters or StreamFilters(),
            channel=channel or QueueChannel(self._max_pending),
            last_heartbeat=self._clock(),
        )
        self._registry.add(connection)
        self._emitter.on(
            ANY_EVENT,
            EventListener(
                name=connection.listener_name,
                handler=partial(self._on_event, connection.id),
            ),
        )
        connection.state = ConnectionState.OPEN
        if self._metrics is not None:
            self._metrics.increment("stream_connections_opened")
        self._logger.info(
            "stream_connection_opened",
            extra={
                "connection_id": connection.id,
                "user_id": user_id,
                "active_connections": self.active_connections,
            },
        )

        delivered = await self._send(
            connection,
            MessageType.CONNECTION,
            {
                "connectionId": connection.id,
                "timestamp": _now_iso(),
                "message": CONNECTED_MESSAGE,
                "activeConnections": self.active_connections,
            },
        )
        if delivered and self._heartbeat_interval > 0:
            connection.heartbeat_task = asyncio.create_task(
                self._heartbeat_loop(connection.id), name=f"heartbeat:{connection.id}"
            )
        return connection

    async def disconnect(self, connection_id: str, reason: str = "client_disconnected") -> bool:
        connection = self._registry.remove(connection_id)
        if connection is None:
            return False
        connection.state = ConnectionState.CLOSED
        self._emitter.off(ANY_EVENT, connection.listener_name)
        task = connection.heartbeat_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        connection.channel.close()
        if self._metrics is not None:
            self._metrics.increment("stream_connections_closed", label=reason)
        self._logger.info(
            "stream_connection_closed",
            extra={
                "connection_id": connection_id,
                "reason": reason,
                "active_connections": self.active_connections,
            },
        )
        return True

    async def stream(self, connection: StreamConnection) -> AsyncIterator[str]:
        """SSE frames for one connection. The connection is closed when the consumer stops."""
        try:
            async for frame in connection.channel.messages():
                yield frame
        finally:
            await self.disconnect(connection.id, "client_disconnected")

    async def broadcast_notification(
        self,
        notification_type: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        target_user_ids: Optional[Iterable[str]] = None,
        sent_by: Optional[str] = None,
    ) -> int:
        """Send one notification to every open connection (or those owned by target users)."""
        targets = set(target_user_ids) if target_user_ids else None
        notification = {
            "id": f"notif-{uuid.uuid4().hex}",
            "type": notification_type,
            "message": message,
            "data": data,
            "sentBy": sent_by,
            "timestamp": _now_iso(),
        }
        sent = 0
        for connection in self._registry.snapshot():
            if connection.state is not ConnectionState.OPEN:
                continue
            if targets is not None and connection.user_id not in targets:
                continue
            if await self._send(connection, MessageType.NOTIFICATION, notification):
                sent += 1
        self._logger.info(
            "stream_notification_broadcast",
            extra={"notification_type": notification_type, "sent_to": sent, "sent_by": sent_by},
        )
        return sent

    async def close_all(self, reason: str = ADMIN_CLOSE_MESSAGE) -> int:
        closed = 0
        for connection in self._registry.snapshot():
            try:
                connection.channel.send(
                    format_sse(
                        {
                            "type": MessageType.SYSTEM.value,
                            "data": {
                                "message": reason,
                                "timestamp": _now_iso(),
                                "reason": "maintenance",
                            },
                        }
                    )
                )
            except ConnectionClosedError:
                self._logger.debug("stream_close_notice_skipped", extra={"connection_id": connection.id})
            if await self.disconnect(connection.id, "closed_by_admin"):
                closed += 1
        return closed

    async def sweep_stale(self) -> int:
        now = self._clock()
        stale = [
            c for c in self._registry.snapshot() if now - c.last_heartbeat > self._stale_after
        ]
        for connection in stale:
            await self.disconnect(connection.id, "stale")
        if stale:
            self._logger.info("stream_stale_swept", extra={"closed": len(stale)})
        return len(stale)

    async def _on_event(self, connection_id: str, event: DomainEvent) -> None:
        connection = self._registry.get(connection_id)
        if connection is None or connection.state is not ConnectionState.OPEN:
            return
        if not connection.filters.allows(event):
            return
        await self._send(connection, MessageType.ACTIVITY, serialize_event(event))

    async def _send(
        self,
        connection: StreamConnection,
        message_type: MessageType,
        data: Dict[str, Any],
    ) -> bool:
        try:
            connection.channel.send(format_sse({"type": message_type.value, "data": data}))
            return True
        except ConnectionClosedError as e:
            self._logger.warning(
                "stream_write_failed",
                extra={
                    "connection_id": connection.id,
                    "message_type": message_type.value,
                    "error": e.message,
                },
            )
            await self.disconnect(connection.id, "write_failed")
            return False

    async def _heartbeat_loop(self, connection_id: str) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            connection = self._registry.get(connection_id)
            if connection is None:
                return
            delivered = await self._send(
                connection,
                MessageType.HEARTBEAT,
                {"timestamp": _now_iso(), "activeConnections": self.active_connections},
            )
            if not delivered:
                return
            connection.last_heartbeat = self._clock()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep_stale()
            except Exception as e:
                self._logger.error("stream_sweep_failed", extra={"error": str(e)})
