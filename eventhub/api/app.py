"""FastAPI application: lifespan, exception handlers, root and health endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from eventhub import __version__
from eventhub.api.routes import router
from eventhub.api.schemas import ErrorResponse, ValidationErrorResponse
from eventhub.events import EventNotFoundError

if TYPE_CHECKING:
    from eventhub.components import Components

logger = logging.getLogger(__name__)


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "request"


async def not_found_exception_handler(
    request: Request, exc: EventNotFoundError
) -> JSONResponse:
    logger.warning("Event not found: %s", exc)
    body = ErrorResponse(status=404, message=str(exc))
    return JSONResponse(status_code=404, content=body.model_dump(mode="json"))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    """Map request validation failures to 400 with one message per field."""
    logger.warning("Validation error on %s: %s", request.url.path, exc)
    errors = {_field_name(tuple(err["loc"])): err["msg"] for err in exc.errors()}
    body = ValidationErrorResponse(status=400, message="Validation failed", errors=errors)
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unexpected error: %s", exc, exc_info=exc)
    body = ErrorResponse(status=500, message="An unexpected error occurred")
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


def create_app(components: "Components", manage_lifecycle: bool = True) -> FastAPI:
    """Build the app around already-wired components.

    With manage_lifecycle the app starts the background workers on startup and
    stops them (and closes the store) on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await components.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await components.stop()

    app = FastAPI(
        title="EventHub API",
        version=__version__,
        description="Event-driven processing with live notifications",
        lifespan=lifespan,
    )
    app.state.components = components
    app.include_router(router)

    app.exception_handler(EventNotFoundError)(not_found_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(ValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {
            "name": "EventHub API",
            "version": __version__,
            "status": "running",
            "description": "Event-Driven Cloud Application",
            "_links": {
                "health": "/health",
                "docs": "/docs",
                "api-docs": "/openapi.json",
                "events": "/api/events",
            },
        }

    @app.get("/health")
    async def health() -> JSONResponse:
        store_ok = await components.store.ping()
        body = {
            "status": "ok" if store_ok else "degraded",
            "store": store_ok,
            "broker_enabled": components.service.broker_enabled,
            "subscribers": components.hub.subscriber_count,
        }
        return JSONResponse(status_code=200 if store_ok else 503, content=body)

    return app
