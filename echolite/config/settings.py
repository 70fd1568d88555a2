"""Centralized runtime configuration via pydantic-settings.

All ``ECHOLITE_*`` environment variables are read, validated, and exposed here.
Logging env vars (``ECHOLITE_LOG_FORMAT``, ``ECHOLITE_LOG_LEVEL``) are
excluded; they stay in ``echolite.logging`` for bootstrap-safety.

Backend profiles (models, URLs, prompts) are NOT here: they live in the
persisted JSON document handled by ``echolite.config.store``.

Usage::

    from echolite.config.settings import get_settings

    settings = get_settings()
    print(settings.server.port)        # int, validated
    print(settings.gateway.temp_root)  # Path

``.env`` files in the working directory are loaded automatically.
"""

from __future__ import annotations

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    host: str = Field(default="127.0.0.1", validation_alias="ECHOLITE_HOST")
    port: int = Field(default=3000, ge=1, le=65535, validation_alias="ECHOLITE_PORT")
    max_file_size_mb: int = Field(
        default=100, ge=1, le=2048, validation_alias="ECHOLITE_MAX_FILE_SIZE_MB"
    )
    cors_origins: str = Field(default="", validation_alias="ECHOLITE_CORS_ORIGINS")
    config_path: str = Field(
        default="configs/echolite.models.json",
        validation_alias="ECHOLITE_CONFIG_PATH",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """CORS origins as a list (parsed from comma-separated string)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def max_file_size_bytes(self) -> int:
        """Maximum upload size in bytes (derived from MB setting)."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def config_file(self) -> Path:
        """Profile document location, resolved against the working directory."""
        return Path(self.config_path).expanduser().resolve()


class GatewaySettings(BaseSettings):
    """External process and backend transport tuning."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    temp_dir: str | None = Field(default=None, validation_alias="ECHOLITE_TEMP_DIR")
    ffmpeg_path: str = Field(default="ffmpeg", validation_alias="ECHOLITE_FFMPEG_PATH")
    process_diagnostics_limit: int = Field(
        default=8000,
        ge=256,
        le=1_000_000,
        validation_alias="ECHOLITE_PROCESS_DIAGNOSTICS_LIMIT",
    )
    process_stop_grace_s: float = Field(
        default=2.0, gt=0, le=60, validation_alias="ECHOLITE_PROCESS_STOP_GRACE_S"
    )
    backend_connect_timeout_s: float = Field(
        default=10.0, gt=0, le=300, validation_alias="ECHOLITE_BACKEND_CONNECT_TIMEOUT_S"
    )
    backend_read_timeout_s: float = Field(
        default=300.0, gt=0, le=3600, validation_alias="ECHOLITE_BACKEND_READ_TIMEOUT_S"
    )

    @property
    def temp_root(self) -> Path:
        """Process-wide root for request workspaces."""
        if self.temp_dir:
            return Path(self.temp_dir).expanduser()
        return Path(tempfile.gettempdir()) / "echolite"


class CLISettings(BaseSettings):
    """CLI client settings."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    server_url: str = Field(default="http://localhost:3000", validation_alias="ECHOLITE_SERVER_URL")
    http_timeout_s: float = Field(default=600.0, gt=0, validation_alias="ECHOLITE_HTTP_TIMEOUT_S")


class EcholiteSettings(BaseSettings):
    """Root settings. Aggregates all subsystem settings.

    Loads ``.env`` from the current directory when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    cli: CLISettings = Field(default_factory=CLISettings)


@lru_cache(maxsize=1)
def get_settings() -> EcholiteSettings:
    """Return the singleton ``EcholiteSettings`` instance.

    The result is cached; subsequent calls return the same object.
    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    return EcholiteSettings()
