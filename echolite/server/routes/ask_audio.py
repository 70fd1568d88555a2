"""POST /api/ask-audio — answer an instruction about uploaded audio."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import StreamingResponse

from echolite.gateway.orchestrator import Gateway  # noqa: TC001
from echolite.server.dependencies import get_gateway, get_max_upload_bytes
from echolite.server.models.responses import UsageHint
from echolite.server.routes._common import (
    disconnect_guard,
    read_upload,
    text_stream_response,
)

router = APIRouter(tags=["Ask"])


@router.get("/api/ask-audio", response_model=UsageHint)
async def ask_audio_hint() -> UsageHint:
    return UsageHint(hint="POST multipart/form-data with fields 'audio' (file) and 'instruction'.")


@router.post("/api/ask-audio")
async def ask_audio(
    request: Request,
    audio: UploadFile | None = File(default=None),  # noqa: B008
    instruction: str | None = Form(default=None),
    gateway: Gateway = Depends(get_gateway),  # noqa: B008
    max_upload_bytes: int = Depends(get_max_upload_bytes),
) -> StreamingResponse:
    """Stream the answer as plain text.

    The status code is decided before the body starts: every failure up to
    and including the first answer fragment is returned as a JSON error.
    """
    audio_bytes = await read_upload(audio, max_upload_bytes)
    async with disconnect_guard(request) as token:
        stream = await gateway.ask_audio(audio_bytes, instruction, token)
    return text_stream_response(stream)
