"""API request models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class CompleteRequest(BaseModel):
    """Body of ``POST /api/complete``.

    Both fields are optional at the schema level so that a missing value is
    reported as ``invalid_request`` by the gateway, with the same detail text
    as a blank one.
    """

    model_config = ConfigDict(extra="ignore")

    transcript: str | None = None
    instruction: str | None = None
