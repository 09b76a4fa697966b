"""HTTP surface: FastAPI app, REST routes, SSE subscribe endpoint."""

from eventhub.api.app import create_app

__all__ = ["create_app"]
