"""Configuration loader — YAML file + env override."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from promptloop.core.config.schema import Config

# Plain environment names shared with the web app that writes the jobs.
_ENV_FALLBACKS: list[tuple[str, tuple[str, ...]]] = [
    ("DATABASE_URL", ("database", "url")),
    ("OPENAI_API_KEY", ("providers", "openai", "api_key")),
    ("CHANNEL_SECRET_KEY", ("secrets", "channel_secret_key")),
    ("NEXTAUTH_SECRET", ("secrets", "nextauth_secret")),
]


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Load configuration.

    Resolution order for config file:
        1. Explicit ``config_path`` argument
        2. ``PROMPTLOOP_CONFIG`` env variable
        3. ``./config.yaml`` in cwd

    Values priority (handled by pydantic-settings):
        env vars  >  .env file  >  YAML  >  defaults

    Plain names such as ``DATABASE_URL`` fill in whatever is still empty.
    """
    yaml_data = _load_yaml(_resolve_path(config_path))
    config = Config(**yaml_data)
    _apply_env_fallbacks(config)
    return config


def _resolve_path(config_path: str | Path | None = None) -> Path | None:
    """Resolve config file path."""
    if config_path:
        return Path(config_path)

    env = os.environ.get("PROMPTLOOP_CONFIG")
    if env:
        return Path(env)

    default = Path("config.yaml")
    return default if default.exists() else None


def _load_yaml(path: Path | None) -> dict[str, Any]:
    """Load YAML file, return empty dict if not found."""
    if not path or not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _apply_env_fallbacks(config: Config) -> None:
    for env_name, path in _ENV_FALLBACKS:
        value = os.environ.get(env_name)
        if not value:
            continue
        *parents, field = path
        section: Any = config
        for name in parents:
            section = getattr(section, name)
        if not getattr(section, field):
            setattr(section, field, value)

    stale = os.environ.get("WORKER_LOCK_STALE_MINUTES", "").strip()
    if stale.isdigit() and "PROMPTLOOP_WORKER__LOCK_STALE_MINUTES" not in os.environ:
        config.worker.lock_stale_minutes = int(stale)
