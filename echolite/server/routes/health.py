"""Health check endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

import echolite

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Runtime health check (liveness only)."""
    response: dict[str, Any] = {
        "status": "ok",
        "version": echolite.__version__,
    }

    provider = getattr(request.app.state, "settings_provider", None)
    if provider is not None:
        response["config_path"] = provider.location

    return response
