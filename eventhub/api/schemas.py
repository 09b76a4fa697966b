"""HTTP response models. Events are serialized the same way for REST and SSE."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from eventhub.events.models import Event, EventStats, EventStatus


def _to_datetime(ts: float | None) -> datetime | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class EventResponse(BaseModel):
    """Event as returned by the API and carried in event-created/event-updated."""

    id: int
    title: str
    description: str | None = None
    source: str
    type: str
    status: EventStatus
    created_at: datetime
    processed_at: datetime | None = None
    retry_count: int = 0

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        return cls(
            id=event.id,
            title=event.title,
            description=event.description,
            source=event.source,
            type=event.type,
            status=event.status,
            created_at=_to_datetime(event.created_at),
            processed_at=_to_datetime(event.processed_at),
            retry_count=event.retry_count,
        )


class StatsResponse(BaseModel):
    total: int
    pending: int
    processing: int
    processed: int
    failed: int
    broker_enabled: bool

    @classmethod
    def from_stats(cls, stats: EventStats) -> "StatsResponse":
        return cls(
            total=stats.total,
            pending=stats.pending,
            processing=stats.processing,
            processed=stats.processed,
            failed=stats.failed,
            broker_enabled=stats.broker_enabled,
        )


class ErrorResponse(BaseModel):
    status: int
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ValidationErrorResponse(ErrorResponse):
    errors: dict[str, str] = Field(default_factory=dict)


def serialize_event(event: Event) -> str:
    """JSON text for one event; used as the hub serializer."""
    return EventResponse.from_event(event).model_dump_json()
