"""Dispatchers: drain the queue and resolve each event to PROCESSED or FAILED.

PollingDispatcher drains InMemoryEventQueue on a fixed interval.
StreamDispatcher runs RedisStreamQueue.consume, which pushes each entry.
Both hand messages to EventProcessor; neither touches the store directly.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable

from eventhub.events.errors import EventNotFoundError
from eventhub.events.models import EventMessage, EventStatus
from eventhub.events.queue import InMemoryEventQueue, RedisStreamQueue
from eventhub.events.service import EventService

logger = logging.getLogger(__name__)

Work = Callable[[EventMessage], Awaitable[None]]


class EventProcessor:
    """Simulates processing work, then records the outcome through EventService."""

    def __init__(
        self,
        service: EventService,
        min_delay: float = 1.0,
        max_delay: float = 2.0,
        work: Work | None = None,
    ) -> None:
        self._service = service
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._work = work or self._simulate

    async def _simulate(self, message: EventMessage) -> None:
        await asyncio.sleep(random.uniform(self._min_delay, self._max_delay))

    async def process(self, message: EventMessage) -> EventStatus:
        """Run work for one message. Returns the status written.

        Cancellation writes FAILED and is then re-raised.
        """
        logger.info("Processing event: eventId=%s", message.event_id)
        try:
            await self._work(message)
        except asyncio.CancelledError:
            logger.error("Event processing interrupted: eventId=%s", message.event_id)
            await self._resolve(message, EventStatus.FAILED)
            raise
        except Exception as e:
            logger.error(
                "Error processing event: eventId=%s, error=%s", message.event_id, e
            )
            await self._resolve(message, EventStatus.FAILED)
            return EventStatus.FAILED
        await self._resolve(message, EventStatus.PROCESSED)
        logger.info("Event processed successfully: eventId=%s", message.event_id)
        return EventStatus.PROCESSED

    async def _resolve(self, message: EventMessage, status: EventStatus) -> None:
        try:
            await self._service.update_event_status(message.event_id, status)
        except EventNotFoundError:
            logger.warning(
                "Event %s vanished before status %s could be written",
                message.event_id,
                status.value,
            )
        except Exception as e:
            logger.exception(
                "Status update failed: eventId=%s, status=%s: %s",
                message.event_id,
                status.value,
                e,
            )


class PollingDispatcher:
    """Polls the in-memory queue every poll_interval seconds; one message per cycle."""

    def __init__(
        self,
        queue: InMemoryEventQueue,
        processor: EventProcessor,
        poll_interval: float = 2.0,
    ) -> None:
        self._queue = queue
        self._processor = processor
        self._poll_interval = poll_interval
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._loop())
        logger.info("Polling dispatcher started (interval=%.1fs)", self._poll_interval)

    async def stop(self) -> None:
        """Cancel and await the poll loop. An in-flight message is resolved to FAILED."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Polling dispatcher stopped")

    async def run_once(self) -> bool:
        """Poll one message and process it. Returns False when the queue was empty."""
        message = self._queue.poll()
        if message is None:
            return False
        logger.info("Processing event from in-memory queue: eventId=%s", message.event_id)
        await self._processor.process(message)
        return True

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.exception("Polling dispatcher cycle failed: %s", e)
            await asyncio.sleep(self._poll_interval)


class StreamDispatcher:
    """Runs the broker consumer; the broker pushes each entry to the processor."""

    def __init__(self, queue: RedisStreamQueue, processor: EventProcessor) -> None:
        self._queue = queue
        self._processor = processor
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())
        logger.info("Stream dispatcher started")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stream dispatcher stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self._queue.consume(self._processor.process)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Stream consumer crashed, restarting: %s", e)
                await asyncio.sleep(1.0)
