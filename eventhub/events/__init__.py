"""Event lifecycle: store, queue backends, dispatchers, notification hub, service."""

from eventhub.events.dispatcher import EventProcessor, PollingDispatcher, StreamDispatcher
from eventhub.events.errors import (
    DeliveryError,
    EventHubError,
    EventNotFoundError,
    PublishError,
)
from eventhub.events.hub import NotificationHub, Subscriber
from eventhub.events.models import (
    CreateEventRequest,
    Event,
    EventMessage,
    EventStats,
    EventStatus,
)
from eventhub.events.queue import EventQueue, InMemoryEventQueue, RedisStreamQueue
from eventhub.events.service import CleanupScheduler, EventService
from eventhub.events.store import EventStore

__all__ = [
    "CleanupScheduler",
    "CreateEventRequest",
    "DeliveryError",
    "Event",
    "EventHubError",
    "EventMessage",
    "EventNotFoundError",
    "EventProcessor",
    "EventQueue",
    "EventService",
    "EventStats",
    "EventStatus",
    "EventStore",
    "InMemoryEventQueue",
    "NotificationHub",
    "PollingDispatcher",
    "PublishError",
    "RedisStreamQueue",
    "StreamDispatcher",
    "Subscriber",
]
