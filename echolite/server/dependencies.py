"""FastAPI dependencies for injection of the Gateway and the settings provider."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request  # noqa: TC002

from echolite.exceptions import ServiceNotConfiguredError

if TYPE_CHECKING:
    from echolite.config.store import SettingsProvider
    from echolite.gateway.orchestrator import Gateway


def get_gateway(request: Request) -> Gateway:
    """Return the Gateway from app state.

    Raises:
        ServiceNotConfiguredError: If no gateway was configured in create_app().
    """
    gateway = request.app.state.gateway
    if gateway is None:
        raise ServiceNotConfiguredError("Gateway")
    return gateway  # type: ignore[no-any-return]


def get_settings_provider(request: Request) -> SettingsProvider:
    """Return the profile settings provider from app state."""
    provider = request.app.state.settings_provider
    if provider is None:
        raise ServiceNotConfiguredError("SettingsProvider")
    return provider  # type: ignore[no-any-return]


def get_max_upload_bytes(request: Request) -> int:
    return request.app.state.max_upload_bytes  # type: ignore[no-any-return]
