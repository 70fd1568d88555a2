"""Shared logic between the action routes (ask-audio, transcribe, complete)."""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import UploadFile  # noqa: TC002
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from echolite.exceptions import AudioTooLargeError
from echolite.gateway.cancel import CancellationToken
from echolite.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import Request

    from echolite.gateway.orchestrator import GatewayStream

logger = get_logger("server.routes")

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"
NO_STORE_HEADERS = {"Cache-Control": "no-store"}


async def read_upload(file: UploadFile | None, max_bytes: int) -> bytes | None:
    """Read an uploaded file, enforcing ``max_bytes``.

    Returns None when no file was sent; the gateway reports that as an
    invalid request.

    Raises:
        AudioTooLargeError: If the upload exceeds ``max_bytes``.
    """
    if file is None:
        return None

    if file.size is not None and file.size > max_bytes:
        raise AudioTooLargeError(file.size, max_bytes)

    # Read with limit to prevent OOM on uploads without Content-Length
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise AudioTooLargeError(len(data), max_bytes)
    return data


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            logger.info("client_disconnected")
            token.cancel()
            return


@asynccontextmanager
async def disconnect_guard(request: Request) -> AsyncIterator[CancellationToken]:
    """Cancellation token that fires if the client disconnects.

    Only watches while the block runs, i.e. during pre-flight. Once the
    response starts streaming, the server's own disconnect handling cancels
    the body iterator.
    """
    token = CancellationToken()
    watcher = asyncio.create_task(_watch_disconnect(request, token))
    try:
        yield token
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


async def _encode(stream: GatewayStream) -> AsyncIterator[bytes]:
    try:
        async for text in stream:
            yield text.encode("utf-8")
    finally:
        await stream.aclose()


def text_stream_response(stream: GatewayStream) -> StreamingResponse:
    """Chunked ``text/plain`` response forwarding answer fragments as they arrive."""
    return StreamingResponse(
        _encode(stream),
        media_type=TEXT_MEDIA_TYPE,
        headers=NO_STORE_HEADERS,
        background=BackgroundTask(stream.aclose),
    )
