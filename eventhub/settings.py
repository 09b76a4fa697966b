"""Load application settings from config/settings.yaml, with env overrides."""

import os
from pathlib import Path
from typing import Any

import yaml

_DEFAULTS: dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "port": 8080,
    },
    "store": {
        "db_path": "data/events.db",
        "busy_timeout": 5000,
    },
    "queue": {
        # true: Redis Stream (durable); false: in-process FIFO (demo mode)
        "broker_enabled": False,
        "redis_url": "redis://localhost:6379/0",
        "stream": "events",
        "group": "eventhub-processors",
        "consumer": None,
        "block_ms": 5000,
    },
    "dispatcher": {
        "poll_interval": 2.0,
        "min_delay": 1.0,
        "max_delay": 2.0,
    },
    "notifications": {
        "subscriber_timeout": 3600.0,
        "max_backlog": 100,
    },
    "maintenance": {
        "enabled": True,
        "cleanup_interval": 18000.0,  # 5 hours
    },
    "logging": {
        "file": "logs/eventhub.log",
        "level": "INFO",
        "log_to_console": True,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
    },
}

# Environment variable -> (dot path, parser)
_ENV_OVERRIDES: dict[str, tuple[str, Any]] = {
    "EVENTHUB_BROKER_ENABLED": (
        "queue.broker_enabled",
        lambda v: v.strip().lower() in ("1", "true", "yes", "on"),
    ),
    "EVENTHUB_REDIS_URL": ("queue.redis_url", str),
    "EVENTHUB_DB_PATH": ("store.db_path", str),
    "EVENTHUB_PORT": ("server.port", int),
}

_cached: dict[str, Any] | None = None


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base recursively. Mutates base."""
    for key, value in overlay.items():
        if value is None:
            continue
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _deep_copy_nested(obj: Any) -> Any:
    """Return a deep copy of nested dicts/lists for defaults."""
    if isinstance(obj, dict):
        return {k: _deep_copy_nested(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_deep_copy_nested(x) for x in obj]
    return obj


def _set_path(settings: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    current = settings
    for part in parents:
        current = current.setdefault(part, {})
    current[leaf] = value


def _apply_env(settings: dict[str, Any], environ: dict[str, str]) -> None:
    for name, (path, parse) in _ENV_OVERRIDES.items():
        raw = environ.get(name)
        if raw:
            _set_path(settings, path, parse(raw))


def get_default_settings() -> dict[str, Any]:
    """Return a deep copy of default settings."""
    return _deep_copy_nested(_DEFAULTS)


def get_setting(settings: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get a nested value by dot path (e.g. 'queue.broker_enabled')."""
    current: Any = settings
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def reload_settings() -> None:
    """Clear the settings cache."""
    global _cached
    _cached = None


def load_settings(
    config_dir: Path | None = None,
    environ: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Load settings: defaults, then config/settings.yaml, then EVENTHUB_* env vars."""
    global _cached
    if _cached is not None:
        return _cached

    if config_dir is None:
        config_dir = Path(__file__).resolve().parent.parent / "config"
    path = config_dir / "settings.yaml"

    result = get_default_settings()

    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                _deep_merge(result, data)
        except (yaml.YAMLError, OSError):
            pass

    _apply_env(result, dict(os.environ) if environ is None else environ)
    _cached = result
    return result
