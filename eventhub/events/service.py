"""EventService: the single writer of event status transitions.

Every change is written to the store first; queue publish and hub broadcast
happen only after the write succeeded.
"""

import asyncio
import logging

from eventhub.events.errors import EventNotFoundError
from eventhub.events.hub import EVENT_CREATED, EVENT_UPDATED, EVENTS_CLEARED, NotificationHub
from eventhub.events.models import (
    CreateEventRequest,
    Event,
    EventMessage,
    EventStats,
    EventStatus,
)
from eventhub.events.queue import EventQueue
from eventhub.events.store import EventStore

logger = logging.getLogger(__name__)


class EventService:
    """Coordinates store, queue and hub for create, update, stats and clear."""

    def __init__(self, store: EventStore, queue: EventQueue, hub: NotificationHub) -> None:
        self._store = store
        self._queue = queue
        self._hub = hub

    @property
    def broker_enabled(self) -> bool:
        return self._queue.is_durable()

    async def create_event(self, request: CreateEventRequest) -> Event:
        """Insert as PENDING, publish to the queue, broadcast event-created."""
        logger.info(
            "Creating new event: title=%r, source=%r, type=%r",
            request.title,
            request.source,
            request.type,
        )
        event = await self._store.insert(
            title=request.title,
            source=request.source,
            type=request.type,
            description=request.description,
        )
        logger.info("Event saved to database: id=%s", event.id)
        await self._queue.publish(EventMessage.from_event(event))
        logger.info(
            "Event creation completed: id=%s, brokerEnabled=%s",
            event.id,
            self.broker_enabled,
        )
        self._hub.broadcast(EVENT_CREATED, event)
        return event

    async def get_events(self) -> list[Event]:
        """All events, newest first."""
        return await self._store.find_all_ordered_by_creation_desc()

    async def get_event(self, event_id: int) -> Event:
        event = await self._store.find_by_id(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def get_events_by_status(self, status: EventStatus) -> list[Event]:
        return await self._store.find_by_status(status)

    async def update_event_status(self, event_id: int, status: EventStatus) -> Event:
        """Set any status from any status; the only precondition is that the event exists.

        PROCESSED stamps processed_at on first application only, so duplicate
        deliveries leave the timestamp untouched.
        """
        logger.info("Updating event status: id=%s, newStatus=%s", event_id, status.value)
        await self.get_event(event_id)
        updated = await self._store.update_status(event_id, status)
        if updated is None:
            raise EventNotFoundError(event_id)
        logger.info("Event status updated: id=%s, status=%s", updated.id, updated.status.value)
        self._hub.broadcast(EVENT_UPDATED, updated)
        return updated

    async def get_stats(self) -> EventStats:
        """Counts per status read from the store at call time, in one snapshot."""
        counts = await self._store.count_grouped_by_status()
        return EventStats(
            total=sum(counts.values()),
            pending=counts[EventStatus.PENDING],
            processing=counts[EventStatus.PROCESSING],
            processed=counts[EventStatus.PROCESSED],
            failed=counts[EventStatus.FAILED],
            broker_enabled=self.broker_enabled,
        )

    async def delete_all_events(self) -> None:
        """Clear the store and broadcast events-cleared with no payload."""
        logger.info("Deleting all events")
        deleted = await self._store.delete_all()
        logger.info("All events deleted (%d)", deleted)
        self._hub.broadcast(EVENTS_CLEARED)


class CleanupScheduler:
    """Periodically clears all events to bound storage in long-running demos."""

    def __init__(self, service: EventService, interval: float = 5 * 3600.0) -> None:
        self._service = service
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._loop())
        logger.info("Cleanup scheduler started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        """Cancel and await the cleanup loop task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                logger.info("Scheduled task: deleting all events to clear old data")
                await self._service.delete_all_events()
            except Exception as e:
                logger.exception("Scheduled cleanup failed: %s", e)
