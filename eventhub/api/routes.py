"""REST and SSE endpoints for events."""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import StreamingResponse

from eventhub.api.schemas import EventResponse, StatsResponse
from eventhub.events import CreateEventRequest, EventService, EventStatus, NotificationHub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])

_SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_service(request: Request) -> EventService:
    return request.app.state.components.service


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.components.hub


@router.post("", status_code=status.HTTP_201_CREATED, response_model=EventResponse)
async def create_event(
    body: CreateEventRequest,
    service: EventService = Depends(get_service),
) -> EventResponse:
    """Create an event, store it and publish it to the queue."""
    logger.info("POST /api/events - Creating event: title=%r", body.title)
    event = await service.create_event(body)
    return EventResponse.from_event(event)


@router.get("", response_model=list[EventResponse])
async def list_events(service: EventService = Depends(get_service)) -> list[EventResponse]:
    """All events, newest first."""
    return [EventResponse.from_event(e) for e in await service.get_events()]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(service: EventService = Depends(get_service)) -> StatsResponse:
    return StatsResponse.from_stats(await service.get_stats())


@router.get("/subscribe")
async def subscribe(hub: NotificationHub = Depends(get_hub)) -> StreamingResponse:
    """Server-Sent Events stream of event-created, event-updated and events-cleared."""
    subscriber = hub.subscribe()
    logger.info("GET /api/events/subscribe - New SSE subscription %s", subscriber.id)

    async def event_stream():
        yield ": connected\n\n"
        async for frame in subscriber.stream():
            yield frame

    return StreamingResponse(
        event_stream(), media_type="text/event-stream", headers=_SSE_HEADERS
    )


@router.get("/status/{event_status}", response_model=list[EventResponse])
async def list_events_by_status(
    event_status: EventStatus,
    service: EventService = Depends(get_service),
) -> list[EventResponse]:
    return [
        EventResponse.from_event(e)
        for e in await service.get_events_by_status(event_status)
    ]


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: int, service: EventService = Depends(get_service)
) -> EventResponse:
    return EventResponse.from_event(await service.get_event(event_id))


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_all_events(service: EventService = Depends(get_service)) -> Response:
    logger.info("DELETE /api/events - Deleting all events")
    await service.delete_all_events()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
