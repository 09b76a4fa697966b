"""Queue backends between event creation and event processing.

Two implementations of one contract, chosen once at startup:
- InMemoryEventQueue: best-effort FIFO buffer, drained by polling.
- RedisStreamQueue: durable Redis Stream with a consumer group, push-delivered.
"""

import asyncio
import json
import logging
import socket
from collections import deque
from typing import Awaitable, Callable, Protocol, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from eventhub.events.errors import PublishError
from eventhub.events.models import EventMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[EventMessage], Awaitable[object]]


@runtime_checkable
class EventQueue(Protocol):
    """Contract shared by both queue backends. Used by EventService and the runner."""

    async def publish(self, message: EventMessage) -> None: ...
    def is_durable(self) -> bool: ...
    async def close(self) -> None: ...


class InMemoryEventQueue:
    """Unbounded in-process FIFO. Non-durable; lost on restart."""

    def __init__(self) -> None:
        self._queue: deque[EventMessage] = deque()

    async def publish(self, message: EventMessage) -> None:
        """Enqueue without blocking. Always succeeds."""
        self._queue.append(message)
        logger.info(
            "Publishing event to in-memory queue: eventId=%s (size=%d)",
            message.event_id,
            len(self._queue),
        )

    def poll(self) -> EventMessage | None:
        """Remove and return the oldest message, or None when drained."""
        try:
            return self._queue.popleft()
        except IndexError:
            return None

    def size(self) -> int:
        return len(self._queue)

    def is_durable(self) -> bool:
        return False

    async def close(self) -> None:
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            logger.warning("In-memory queue closed with %d undelivered messages", dropped)


def _keepalive_options() -> dict[int, int]:
    if hasattr(socket, "TCP_KEEPIDLE"):
        return {
            socket.TCP_KEEPIDLE: 60,
            socket.TCP_KEEPINTVL: 10,
            socket.TCP_KEEPCNT: 6,
        }
    return {}


class RedisStreamQueue:
    """Durable broker backend over a Redis Stream and consumer group.

    publish() schedules XADD in the background and returns immediately; the
    outcome is only logged. consume() pushes each delivered entry to a handler
    and acknowledges it after the handler returns (at-least-once).

    Redelivery is best-effort: an entry whose handler raised stays pending and
    is retried only when consume() starts again (stale entries are not claimed
    with XAUTOCLAIM while running).
    """

    def __init__(
        self,
        url: str,
        stream: str = "events",
        group: str = "eventhub-processors",
        consumer: str | None = None,
        block_ms: int = 5000,
        client: "redis.Redis | None" = None,
    ) -> None:
        self._stream = stream
        self._group = group
        self._consumer = consumer or f"{socket.gethostname()}-consumer"
        self._block_ms = block_ms
        self._client = client or redis.from_url(
            url,
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_keepalive_options=_keepalive_options(),
        )
        self._pending: set[asyncio.Task[None]] = set()
        self._group_ready = False

    def is_durable(self) -> bool:
        return True

    async def publish(self, message: EventMessage) -> None:
        """Hand the message to the broker without waiting for the acknowledgment."""
        logger.info(
            "Publishing event to stream [%s]: eventId=%s", self._stream, message.event_id
        )
        task = asyncio.create_task(self._send(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, message: EventMessage) -> None:
        try:
            entry_id = await self._xadd(message)
            logger.info(
                "Event published successfully: eventId=%s, entry=%s",
                message.event_id,
                entry_id,
            )
        except PublishError as e:
            logger.error("Failed to publish event: eventId=%s, error=%s", message.event_id, e)

    async def _xadd(self, message: EventMessage) -> str:
        try:
            return await self._client.xadd(
                self._stream, {"payload": json.dumps(message.to_dict())}
            )
        except RedisError as e:
            raise PublishError(str(e)) from e

    async def _ensure_group(self) -> None:
        if self._group_ready:
            return
        try:
            await self._client.xgroup_create(
                self._stream, self._group, id="0", mkstream=True
            )
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._group_ready = True

    async def consume(self, handler: MessageHandler) -> None:
        """Read entries for this consumer forever, invoking handler once per entry.

        Entries left unacknowledged by a previous run of this consumer are
        replayed first.
        """
        await self._ensure_group()
        await self._replay_pending(handler)
        while True:
            try:
                entries = await self._read(">", block=self._block_ms)
            except RedisError as e:
                logger.error("Stream read failed on [%s]: %s", self._stream, e)
                await asyncio.sleep(1.0)
                continue
            for entry_id, fields in entries:
                await self._deliver(handler, entry_id, fields)

    async def _replay_pending(self, handler: MessageHandler) -> None:
        # The cursor advances past each batch; entries whose handler fails again stay pending.
        cursor = "0"
        while True:
            entries = await self._read(cursor, block=None, count=100)
            if not entries:
                return
            for entry_id, fields in entries:
                await self._deliver(handler, entry_id, fields)
            cursor = entries[-1][0]

    async def _read(
        self, cursor: str, block: int | None, count: int = 10
    ) -> list[tuple[str, dict[str, str]]]:
        response = await self._client.xreadgroup(
            self._group,
            self._consumer,
            {self._stream: cursor},
            count=count,
            block=block,
        )
        return response[0][1] if response else []

    async def _deliver(
        self, handler: MessageHandler, entry_id: str, fields: dict[str, str]
    ) -> None:
        try:
            message = EventMessage.from_dict(json.loads(fields["payload"]))
        except (KeyError, ValueError, TypeError) as e:
            logger.error("Dropping malformed stream entry %s: %s", entry_id, e)
            await self._client.xack(self._stream, self._group, entry_id)
            return
        logger.info(
            "Received event from stream: eventId=%s, title=%r",
            message.event_id,
            message.title,
        )
        try:
            await handler(message)
        except Exception as e:
            logger.exception("Stream handler failed for entry %s: %s", entry_id, e)
            return
        await self._client.xack(self._stream, self._group, entry_id)

    async def close(self) -> None:
        """Wait for in-flight publishes, then close the connection pool."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._client.aclose()
