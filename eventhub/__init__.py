"""EventHub: event lifecycle with pluggable queue backends and live SSE notifications."""

__version__ = "1.0.0"
