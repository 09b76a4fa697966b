"""Notification hub: fan-out of state-change notifications to live SSE streams.

The live set is an immutable tuple rebound on every change (copy-on-write).
broadcast() iterates the snapshot it read, so subscribers joining or leaving
mid-broadcast never disturb the iteration.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Callable

from eventhub.events.errors import DeliveryError

logger = logging.getLogger(__name__)

EVENT_CREATED = "event-created"
EVENT_UPDATED = "event-updated"
EVENTS_CLEARED = "events-cleared"

Serializer = Callable[[Any], str]


def _default_serializer(payload: Any) -> str:
    if hasattr(payload, "to_dict"):
        payload = payload.to_dict()
    return json.dumps(payload, ensure_ascii=False)


def encode_frame(event_name: str, data: str) -> str:
    """Encode one named server-sent event. Multi-line data gets one data: line each."""
    lines = [f"event: {event_name}"]
    lines.extend(f"data: {line}" for line in data.splitlines() or [""])
    return "\n".join(lines) + "\n\n"


class Subscriber:
    """One live stream. Frames are buffered per subscriber, in broadcast order."""

    def __init__(
        self,
        on_close: Callable[["Subscriber"], None],
        timeout: float,
        max_backlog: int,
    ) -> None:
        self.id = uuid.uuid4().hex
        self._on_close = on_close
        self._timeout = timeout
        self._frames: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max_backlog)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: str) -> None:
        """Buffer a frame for this stream. Raises DeliveryError if it cannot accept it."""
        if self._closed:
            raise DeliveryError(f"subscriber {self.id} is closed")
        try:
            self._frames.put_nowait(frame)
        except asyncio.QueueFull as e:
            raise DeliveryError(f"subscriber {self.id} backlog full") from e

    def close(self) -> None:
        """Complete the stream and leave the hub. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._frames.put_nowait(None)
        except asyncio.QueueFull:
            pass
        self._on_close(self)

    async def stream(self) -> AsyncIterator[str]:
        """Yield frames until closed, idle for longer than timeout, or cancelled."""
        try:
            while not self._closed:
                try:
                    frame = await asyncio.wait_for(self._frames.get(), timeout=self._timeout)
                except asyncio.TimeoutError:
                    logger.debug("Subscriber %s timed out", self.id)
                    break
                if frame is None:
                    break
                yield frame
        finally:
            self.close()


class NotificationHub:
    """Owns the live subscriber set and broadcasts named events to it."""

    def __init__(
        self,
        subscriber_timeout: float = 3600.0,
        max_backlog: int = 100,
        serializer: Serializer | None = None,
    ) -> None:
        self._subscriber_timeout = subscriber_timeout
        self._max_backlog = max_backlog
        self._serializer = serializer or _default_serializer
        self._subscribers: tuple[Subscriber, ...] = ()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        """Open a new stream and add it to the live set."""
        subscriber = Subscriber(
            on_close=self._remove,
            timeout=self._subscriber_timeout,
            max_backlog=self._max_backlog,
        )
        self._subscribers = (*self._subscribers, subscriber)
        logger.debug(
            "Subscriber %s connected (%d live)", subscriber.id, len(self._subscribers)
        )
        return subscriber

    def _remove(self, subscriber: Subscriber) -> None:
        self._subscribers = tuple(s for s in self._subscribers if s is not subscriber)
        logger.debug(
            "Subscriber %s removed (%d live)", subscriber.id, len(self._subscribers)
        )

    def broadcast(self, event_name: str, payload: Any = None) -> int:
        """Deliver event_name to every live subscriber. Returns the delivered count.

        No-op without subscribers; the payload is serialized once otherwise.
        Subscribers that fail to accept the frame are closed and dropped.
        """
        snapshot = self._subscribers
        if not snapshot:
            return 0
        data = "null" if payload is None else self._serializer(payload)
        frame = encode_frame(event_name, data)
        dead: list[Subscriber] = []
        for subscriber in snapshot:
            try:
                subscriber.send(frame)
            except DeliveryError:
                logger.debug("Error sending %s to subscriber %s, removing", event_name, subscriber.id)
                dead.append(subscriber)
        if dead:
            # A subscriber already marked closed never reaches _remove via close().
            self._subscribers = tuple(s for s in self._subscribers if s not in dead)
            for subscriber in dead:
                subscriber.close()
        return len(snapshot) - len(dead)

    def close(self) -> None:
        """Complete every live stream (shutdown)."""
        for subscriber in self._subscribers:
            subscriber.close()
