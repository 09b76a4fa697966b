"""Shared fixtures: SQLite store in tmp_path, in-memory queue, hub, service."""

from pathlib import Path

import pytest

from eventhub.events import (
    CreateEventRequest,
    EventService,
    EventStore,
    InMemoryEventQueue,
    NotificationHub,
)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "events.db"


@pytest.fixture
async def store(db_path: Path) -> EventStore:
    s = EventStore(db_path)
    yield s
    await s.close()


@pytest.fixture
def queue() -> InMemoryEventQueue:
    return InMemoryEventQueue()


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub(subscriber_timeout=5.0, max_backlog=10)


@pytest.fixture
def service(
    store: EventStore, queue: InMemoryEventQueue, hub: NotificationHub
) -> EventService:
    return EventService(store, queue, hub)


def make_request(title: str = "Test Event", **overrides: str) -> CreateEventRequest:
    data = {
        "title": title,
        "description": "Test Description",
        "source": "test-source",
        "type": "TEST",
    }
    data.update(overrides)
    return CreateEventRequest(**data)
