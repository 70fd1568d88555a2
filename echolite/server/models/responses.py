"""API response models (Pydantic) for JSON serialization."""

from __future__ import annotations

from pydantic import BaseModel


class TranscriptResponse(BaseModel):
    """``response_format=json`` body of ``POST /api/transcribe``."""

    transcript: str


class ConfigSavedResponse(BaseModel):
    """Acknowledgement of ``POST /api/config/models``."""

    ok: bool = True


class UsageHint(BaseModel):
    """Body of ``GET`` on an action endpoint."""

    ok: bool = True
    hint: str
