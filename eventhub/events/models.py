"""Event domain models: create request (Pydantic) and internal dataclasses."""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

__all__ = ["CreateEventRequest", "Event", "EventMessage", "EventStats", "EventStatus"]


class EventStatus(str, Enum):
    """Processing status of an event."""

    PENDING = "PENDING"
    # Never set by the dispatcher; kept as a valid stored value.
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


@dataclass
class Event:
    """Internal representation of an events row."""

    id: int
    title: str
    source: str
    type: str
    status: EventStatus
    created_at: float
    description: str | None = None
    processed_at: float | None = None
    retry_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class EventMessage:
    """Immutable projection of an Event placed on the queue."""

    event_id: int
    title: str
    source: str
    type: str
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_event(cls, event: Event) -> "EventMessage":
        return cls(
            event_id=event.id,
            title=event.title,
            source=event.source,
            type=event.type,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventMessage":
        return cls(
            event_id=int(data["event_id"]),
            title=str(data["title"]),
            source=str(data["source"]),
            type=str(data["type"]),
            timestamp=float(data.get("timestamp") or time.time()),
        )


@dataclass(frozen=True)
class EventStats:
    """Counts per status at read time plus the queue mode."""

    total: int
    pending: int
    processing: int
    processed: int
    failed: int
    broker_enabled: bool


class CreateEventRequest(BaseModel):
    """Validated input for EventService.create_event."""

    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    source: str = Field(min_length=1, max_length=100)
    type: str = Field(min_length=1, max_length=50)

    @field_validator("title", "source", "type")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value
