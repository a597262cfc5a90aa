"""Runtime configuration — env-driven.

Centralized config using pydantic-settings.  Reads from a ``.env`` file and
``MARKERSYNC_*`` environment variables.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SyncConfig(BaseSettings):
    """Marker sync configuration with environment variable overrides.

    All settings can be overridden via MARKERSYNC_* environment variables
    or a .env file in the working directory.

    Examples
    --------
    Override via environment::

        export MARKERSYNC_STORE_PATH=/srv/tracker/players.db
        export MARKERSYNC_TICK_INTERVAL_SECONDS=10
        export MARKERSYNC_LOG_LEVEL=DEBUG

    Or via .env file::

        MARKERSYNC_WORLD_COLUMN=dimension
        MARKERSYNC_OVERLAY_PATH=/var/www/map/overlay
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MARKERSYNC_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Record store
    store_path: Path = Path("players.db")
    store_table: str = "players"
    identity_column: str = "token"
    name_column: str = "name"
    world_column: str | None = None   # e.g. "dimension"; None uses default_world
    default_world: str = "world"
    store_timeout_seconds: float = 5.0

    # Overlay namespace
    namespace_id: str = "live_map_players"
    namespace_label: str = "Live Map Players"
    marker_prefix: str = "plr_"
    overlay_path: Path = Path(".markersync/overlay")

    # Scheduling
    tick_interval_seconds: float = 5.0

    # Icon provisioning
    icon_url_template: str = "https://mineskin.eu/helm/{name}/100.png"
    icon_timeout_seconds: float = 5.0
    icon_workers: int = 4
    icon_user_agent: str = "markersync icon fetcher"

    @field_validator("store_table", "identity_column", "name_column", "world_column")
    @classmethod
    def _check_identifier(cls, value: str | None) -> str | None:
        if value is not None and not _IDENTIFIER.match(value):
            raise ValueError(f"{value!r} is not a valid SQL identifier")
        return value

    @field_validator(
        "store_timeout_seconds", "tick_interval_seconds", "icon_timeout_seconds"
    )
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("icon_workers")
    @classmethod
    def _check_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("icon_workers must be at least 1")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton: import as `from markersync.config import config`
config = SyncConfig()
