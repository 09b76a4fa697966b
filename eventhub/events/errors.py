"""Domain errors for the event lifecycle."""


class EventHubError(Exception):
    """Base class for all event lifecycle errors."""


class EventNotFoundError(EventHubError):
    """Referenced event id does not exist in the store."""

    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event not found with id: {event_id}")
        self.event_id = event_id


class PublishError(EventHubError):
    """Queue transport failed to accept a message. Logged, never surfaced."""


class DeliveryError(EventHubError):
    """A single subscriber could not accept a notification."""
