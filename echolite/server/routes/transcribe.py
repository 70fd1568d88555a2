"""POST /api/transcribe — file transcription with the configured engine."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse

from echolite._types import ResponseFormat
from echolite.config.store import SettingsProvider  # noqa: TC001
from echolite.exceptions import InvalidRequestError
from echolite.gateway.orchestrator import Gateway  # noqa: TC001
from echolite.logging import get_logger
from echolite.server.dependencies import (
    get_gateway,
    get_max_upload_bytes,
    get_settings_provider,
)
from echolite.server.models.responses import TranscriptResponse, UsageHint
from echolite.server.routes._common import (
    NO_STORE_HEADERS,
    TEXT_MEDIA_TYPE,
    disconnect_guard,
    read_upload,
)

router = APIRouter(tags=["Audio"])

logger = get_logger("server.routes.transcribe")


def _resolve_format(requested: str | None, configured: str) -> ResponseFormat:
    value = requested or configured
    try:
        return ResponseFormat(value)
    except ValueError:
        valid = ", ".join(e.value for e in ResponseFormat)
        raise InvalidRequestError(
            f"Invalid response_format '{value}'. Accepted values: {valid}"
        ) from None


@router.get("/api/transcribe", response_model=UsageHint)
async def transcribe_hint() -> UsageHint:
    return UsageHint(
        hint="POST multipart/form-data with field 'audio' (file); "
        "optional 'response_format' (text or json)."
    )


@router.post("/api/transcribe")
async def transcribe(
    request: Request,
    audio: UploadFile | None = File(default=None),  # noqa: B008
    response_format: str | None = Form(default=None),
    gateway: Gateway = Depends(get_gateway),  # noqa: B008
    settings_provider: SettingsProvider = Depends(get_settings_provider),  # noqa: B008
    max_upload_bytes: int = Depends(get_max_upload_bytes),
) -> Response:
    """Transcribe an audio file.

    Returns the transcript as ``text/plain`` by default, or as
    ``{"transcript": ...}`` when ``response_format=json``. The per-request
    field overrides the profile's ``responseFormat``.
    """
    fmt = _resolve_format(response_format, settings_provider.load().transcribe.response_format)
    audio_bytes = await read_upload(audio, max_upload_bytes)

    async with disconnect_guard(request) as token:
        transcript = await gateway.transcribe(audio_bytes, token)

    logger.info(
        "transcribe_done",
        chars=len(transcript),
        response_format=fmt.value,
    )

    if fmt is ResponseFormat.JSON:
        return JSONResponse(
            TranscriptResponse(transcript=transcript).model_dump(),
            headers=NO_STORE_HEADERS,
        )
    return StreamingResponse(
        iter([transcript.encode("utf-8")]),
        media_type=TEXT_MEDIA_TYPE,
        headers=NO_STORE_HEADERS,
    )
