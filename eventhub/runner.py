"""Entry point for the server process: settings, logging, components, uvicorn."""

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from eventhub.api import create_app
from eventhub.components import build_components
from eventhub.logging_config import setup_logging
from eventhub.settings import get_setting, load_settings

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


def main() -> None:
    """Bootstrap: env -> settings -> logging -> components -> serve until interrupted."""
    load_dotenv(_PROJECT_ROOT / ".env")
    settings = load_settings()
    setup_logging(_PROJECT_ROOT, settings)
    components = build_components(settings, _PROJECT_ROOT)
    app = create_app(components)
    host = get_setting(settings, "server.host", "0.0.0.0")
    port = int(get_setting(settings, "server.port", 8080))
    logger.info("Listening on http://%s:%s", host, port)
    try:
        uvicorn.run(app, host=host, port=port, log_config=None)
    except KeyboardInterrupt:
        pass  # lifespan shutdown already stopped the workers


__all__ = ["main"]
