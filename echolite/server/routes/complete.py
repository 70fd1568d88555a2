"""POST /api/complete — answer an instruction about a supplied transcript."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from echolite.gateway.orchestrator import Gateway  # noqa: TC001
from echolite.server.dependencies import get_gateway
from echolite.server.models.requests import CompleteRequest  # noqa: TC001
from echolite.server.models.responses import UsageHint
from echolite.server.routes._common import disconnect_guard, text_stream_response

router = APIRouter(tags=["Ask"])


@router.get("/api/complete", response_model=UsageHint)
async def complete_hint() -> UsageHint:
    return UsageHint(hint="POST JSON {\"transcript\": \"...\", \"instruction\": \"...\"}.")


@router.post("/api/complete")
async def complete(
    request: Request,
    body: CompleteRequest,
    gateway: Gateway = Depends(get_gateway),  # noqa: B008
) -> StreamingResponse:
    """Stream the answer as plain text."""
    async with disconnect_guard(request) as token:
        stream = await gateway.complete(body.transcript, body.instruction, token)
    return text_stream_response(stream)
