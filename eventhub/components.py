"""Build and run the event lifecycle components from settings.

The queue backend is chosen here, once, from queue.broker_enabled; everything
downstream receives the chosen instance.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from eventhub.api.schemas import serialize_event
from eventhub.events import (
    CleanupScheduler,
    EventProcessor,
    EventQueue,
    EventService,
    EventStore,
    InMemoryEventQueue,
    NotificationHub,
    PollingDispatcher,
    RedisStreamQueue,
    StreamDispatcher,
)
from eventhub.settings import get_setting

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Wired components plus the background workers that belong to them."""

    store: EventStore
    queue: EventQueue
    hub: NotificationHub
    service: EventService
    dispatcher: PollingDispatcher | StreamDispatcher
    cleanup: CleanupScheduler | None = None

    async def start(self) -> None:
        """Start dispatcher and cleanup loops."""
        self.dispatcher.start()
        if self.cleanup:
            self.cleanup.start()
        logger.info(
            "EventHub started (broker_enabled=%s)", self.service.broker_enabled
        )

    async def stop(self) -> None:
        """Stop workers first, then close streams, queue and store."""
        if self.cleanup:
            await self.cleanup.stop()
        await self.dispatcher.stop()
        self.hub.close()
        await self.queue.close()
        await self.store.close()
        logger.info("EventHub stopped")


def _build_queue(settings: dict[str, Any]) -> EventQueue:
    if get_setting(settings, "queue.broker_enabled", False):
        q_cfg = settings.get("queue", {})
        return RedisStreamQueue(
            url=q_cfg.get("redis_url", "redis://localhost:6379/0"),
            stream=q_cfg.get("stream", "events"),
            group=q_cfg.get("group", "eventhub-processors"),
            consumer=q_cfg.get("consumer"),
            block_ms=int(q_cfg.get("block_ms", 5000)),
        )
    return InMemoryEventQueue()


def _build_dispatcher(
    settings: dict[str, Any], queue: EventQueue, service: EventService
) -> PollingDispatcher | StreamDispatcher:
    d_cfg = settings.get("dispatcher", {})
    processor = EventProcessor(
        service,
        min_delay=float(d_cfg.get("min_delay", 1.0)),
        max_delay=float(d_cfg.get("max_delay", 2.0)),
    )
    if isinstance(queue, RedisStreamQueue):
        return StreamDispatcher(queue, processor)
    if isinstance(queue, InMemoryEventQueue):
        return PollingDispatcher(
            queue, processor, poll_interval=float(d_cfg.get("poll_interval", 2.0))
        )
    raise TypeError(f"Unsupported queue backend: {type(queue).__name__}")


def build_components(settings: dict[str, Any], project_root: Path) -> Components:
    """Assemble store, queue, hub, service, dispatcher and cleanup from settings."""
    store = EventStore(
        db_path=project_root / get_setting(settings, "store.db_path", "data/events.db"),
        busy_timeout=int(get_setting(settings, "store.busy_timeout", 5000)),
    )
    queue = _build_queue(settings)
    hub = NotificationHub(
        subscriber_timeout=float(
            get_setting(settings, "notifications.subscriber_timeout", 3600.0)
        ),
        max_backlog=int(get_setting(settings, "notifications.max_backlog", 100)),
        serializer=serialize_event,
    )
    service = EventService(store, queue, hub)
    cleanup = None
    if get_setting(settings, "maintenance.enabled", True):
        cleanup = CleanupScheduler(
            service,
            interval=float(get_setting(settings, "maintenance.cleanup_interval", 18000.0)),
        )
    return Components(
        store=store,
        queue=queue,
        hub=hub,
        service=service,
        dispatcher=_build_dispatcher(settings, queue, service),
        cleanup=cleanup,
    )
