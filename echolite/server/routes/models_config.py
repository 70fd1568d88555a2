"""GET/POST /api/config/models — read and update the backend profiles."""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request

from echolite.config.store import SettingsProvider  # noqa: TC001
from echolite.exceptions import InvalidRequestError
from echolite.logging import get_logger
from echolite.server.dependencies import get_settings_provider
from echolite.server.models.responses import ConfigSavedResponse

router = APIRouter(tags=["Config"])

logger = get_logger("server.routes.config")


@router.get("/api/config/models")
async def get_models_config(
    settings_provider: SettingsProvider = Depends(get_settings_provider),  # noqa: B008
) -> dict[str, Any]:
    """Current profiles merged over the defaults, plus the storage location."""
    document = settings_provider.load().to_document()
    document["_meta"] = {"path": settings_provider.location}
    return document


@router.post("/api/config/models", response_model=ConfigSavedResponse)
async def save_models_config(
    request: Request,
    settings_provider: SettingsProvider = Depends(get_settings_provider),  # noqa: B008
) -> ConfigSavedResponse:
    """Merge a partial or full profile document into the stored one and persist it.

    Out-of-range temperatures are clamped; a non-numeric temperature keeps
    the stored value. Other invalid fields reject the whole document.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError(f"Body is not valid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise InvalidRequestError("Body must be a JSON object")

    # Metadata echoed back by GET is not part of the document.
    body.pop("_meta", None)
    settings_provider.save(body)

    logger.info(
        "config_saved",
        path=settings_provider.location,
        sections=sorted(body),
    )
    return ConfigSavedResponse()
