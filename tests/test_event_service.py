"""Tests for EventService: create/update/stats/clear and their notifications."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from pydantic import ValidationError

from conftest import make_request
from eventhub.events import (
    CleanupScheduler,
    CreateEventRequest,
    EventNotFoundError,
    EventService,
    EventStatus,
    EventStore,
    InMemoryEventQueue,
    NotificationHub,
)


async def _next_frame(subscriber) -> str:
    stream = subscriber.stream()
    return await asyncio.wait_for(stream.__anext__(), timeout=1.0)


class TestCreateEvent:
    """Store, then publish, then broadcast."""

    @pytest.mark.asyncio
    async def test_create_returns_pending_event(self, service: EventService) -> None:
        event = await service.create_event(make_request())
        assert event.id > 0
        assert event.status == EventStatus.PENDING
        assert event.created_at > 0
        assert event.processed_at is None

    @pytest.mark.asyncio
    async def test_create_publishes_message(
        self, service: EventService, queue: InMemoryEventQueue
    ) -> None:
        event = await service.create_event(make_request(title="Queued"))
        message = queue.poll()
        assert message is not None
        assert message.event_id == event.id
        assert message.title == "Queued"

    @pytest.mark.asyncio
    async def test_subscriber_receives_one_created_message(
        self, service: EventService, hub: NotificationHub
    ) -> None:
        subscriber = hub.subscribe()
        event = await service.create_event(make_request())

        frame = await _next_frame(subscriber)
        assert frame.startswith("event: event-created\n")
        assert f'"id": {event.id}' in frame
        assert '"status": "PENDING"' in frame

    @pytest.mark.asyncio
    async def test_store_failure_publishes_and_notifies_nothing(self) -> None:
        store = AsyncMock(spec=EventStore)
        store.insert.side_effect = RuntimeError("db down")
        queue = AsyncMock()
        hub = Mock(spec=NotificationHub)
        service = EventService(store, queue, hub)

        with pytest.raises(RuntimeError):
            await service.create_event(make_request())

        queue.publish.assert_not_awaited()
        hub.broadcast.assert_not_called()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": ""},
            {"title": "   "},
            {"title": "x" * 201},
            {"source": ""},
            {"type": "x" * 51},
            {"description": "x" * 1001},
        ],
    )
    def test_invalid_request_rejected(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            make_request(**overrides)

    def test_description_optional(self) -> None:
        request = CreateEventRequest(title="A", source="s", type="T")
        assert request.description is None


class TestUpdateEventStatus:
    """Permissive transitions; only lookup is checked."""

    @pytest.mark.asyncio
    async def test_unknown_id_raises_and_does_not_notify(self) -> None:
        store = AsyncMock(spec=EventStore)
        store.find_by_id.return_value = None
        hub = Mock(spec=NotificationHub)
        service = EventService(store, InMemoryEventQueue(), hub)

        with pytest.raises(EventNotFoundError, match="Event not found with id: 999"):
            await service.update_event_status(999, EventStatus.PROCESSED)

        store.update_status.assert_not_awaited()
        hub.broadcast.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_unknown_event_raises(self, service: EventService) -> None:
        with pytest.raises(EventNotFoundError):
            await service.get_event(12345)

    @pytest.mark.asyncio
    async def test_processed_stamps_processed_at_once(self, service: EventService) -> None:
        event = await service.create_event(make_request())
        first = await service.update_event_status(event.id, EventStatus.PROCESSED)
        second = await service.update_event_status(event.id, EventStatus.PROCESSED)

        assert first.processed_at is not None
        assert first.processed_at >= first.created_at
        assert second.processed_at == first.processed_at

    @pytest.mark.asyncio
    async def test_failed_leaves_processed_at_null(self, service: EventService) -> None:
        event = await service.create_event(make_request())
        failed = await service.update_event_status(event.id, EventStatus.FAILED)
        assert failed.status == EventStatus.FAILED
        assert failed.processed_at is None

    @pytest.mark.asyncio
    async def test_any_status_from_any_status(self, service: EventService) -> None:
        event = await service.create_event(make_request())
        await service.update_event_status(event.id, EventStatus.FAILED)
        back = await service.update_event_status(event.id, EventStatus.PENDING)
        assert back.status == EventStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_broadcasts_updated(
        self, service: EventService, hub: NotificationHub
    ) -> None:
        event = await service.create_event(make_request())
        subscriber = hub.subscribe()

        await service.update_event_status(event.id, EventStatus.PROCESSED)

        frame = await _next_frame(subscriber)
        assert frame.startswith("event: event-updated\n")
        assert '"status": "PROCESSED"' in frame


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_events_newest_first(self, service: EventService) -> None:
        for title in ("A", "B"):
            await service.create_event(make_request(title=title))
        assert [e.title for e in await service.get_events()] == ["B", "A"]

    @pytest.mark.asyncio
    async def test_get_events_by_status(self, service: EventService) -> None:
        a = await service.create_event(make_request(title="A"))
        await service.create_event(make_request(title="B"))
        await service.update_event_status(a.id, EventStatus.PROCESSED)

        processed = await service.get_events_by_status(EventStatus.PROCESSED)
        assert [e.title for e in processed] == ["A"]


class TestStats:
    """Counts are read from the store on every call."""

    @pytest.mark.asyncio
    async def test_three_events_one_processed(self, service: EventService) -> None:
        events = {}
        for title in ("A", "B", "C"):
            events[title] = await service.create_event(make_request(title=title))
        await service.update_event_status(events["B"].id, EventStatus.PROCESSED)

        stats = await service.get_stats()

        assert stats.total == 3
        assert stats.pending == 2
        assert stats.processed == 1
        assert stats.failed == 0
        assert stats.processing == 0
        assert stats.broker_enabled is False

    @pytest.mark.asyncio
    async def test_counts_always_sum_to_total(self, service: EventService) -> None:
        ids = [
            (await service.create_event(make_request(title=f"E{i}"))).id for i in range(6)
        ]
        sequence = [
            EventStatus.PROCESSED,
            EventStatus.FAILED,
            EventStatus.PROCESSING,
            EventStatus.PROCESSED,
            EventStatus.FAILED,
            EventStatus.PENDING,
        ]
        for event_id, status in zip(ids, sequence):
            await service.update_event_status(event_id, status)
            stats = await service.get_stats()
            assert (
                stats.pending + stats.processing + stats.processed + stats.failed
                == stats.total
            )

    @pytest.mark.asyncio
    async def test_counts_sum_to_total_during_concurrent_updates(
        self, service: EventService
    ) -> None:
        ids = [
            (await service.create_event(make_request(title=f"E{i}"))).id for i in range(40)
        ]

        results = await asyncio.gather(
            *(service.update_event_status(i, EventStatus.PROCESSED) for i in ids),
            *(service.get_stats() for _ in ids),
        )

        for stats in results[len(ids):]:
            assert stats.total == 40
            assert (
                stats.pending + stats.processing + stats.processed + stats.failed
                == stats.total
            )

    @pytest.mark.asyncio
    async def test_reports_durable_queue(self, store: EventStore, hub: NotificationHub) -> None:
        queue = AsyncMock()
        queue.is_durable = Mock(return_value=True)
        service = EventService(store, queue, hub)
        assert (await service.get_stats()).broker_enabled is True


class TestDeleteAll:
    @pytest.mark.asyncio
    async def test_delete_all_clears_and_broadcasts(
        self, service: EventService, hub: NotificationHub
    ) -> None:
        await service.create_event(make_request())
        subscriber = hub.subscribe()

        await service.delete_all_events()

        assert (await service.get_stats()).total == 0
        assert await _next_frame(subscriber) == "event: events-cleared\ndata: null\n\n"


class TestCleanupScheduler:
    @pytest.mark.asyncio
    async def test_runs_delete_all_on_interval(self) -> None:
        service = AsyncMock(spec=EventService)
        scheduler = CleanupScheduler(service, interval=0.05)
        scheduler.start()
        await asyncio.sleep(0.18)
        await scheduler.stop()

        assert service.delete_all_events.await_count >= 2

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_loop(self) -> None:
        service = AsyncMock(spec=EventService)
        service.delete_all_events.side_effect = RuntimeError("db locked")
        scheduler = CleanupScheduler(service, interval=0.05)
        scheduler.start()
        await asyncio.sleep(0.18)
        await scheduler.stop()

        assert service.delete_all_events.await_count >= 2
