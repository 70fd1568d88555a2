"""Opens a backend completion stream and yields its fragments.

``open_completion_stream`` performs the handshake (request sent, status
received) so that rejections surface as exceptions before the caller has
committed to a response. The returned ``CompletionStream`` then reads the
body lazily: each fragment is pulled from the network only when the caller
asks for it.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx

from echolite.backends import build_payload, create_parser, endpoint_url
from echolite.exceptions import (
    BackendRejectedError,
    BackendUnreachableError,
    MalformedBackendPayloadError,
)
from echolite.logging import get_logger

if TYPE_CHECKING:
    from echolite._types import CompletionRequest, StreamFragment
    from echolite.backends.interface import FragmentParser
    from echolite.config.profiles import AskAudioProfile, AskTextProfile
    from echolite.gateway.cancel import CancellationToken

logger = get_logger("backends.client")

_MAX_ERROR_MESSAGE_CHARS = 2000
_AUDIO_UNSUPPORTED_HINT = (
    " (llama.cpp expects base64 16 kHz mono WAV audio; "
    "ensure the server was built with audio support)"
)


def auth_headers(api_key_env: str) -> dict[str, str]:
    """Bearer header from the named environment variable, if it is set."""
    headers = {"Content-Type": "application/json"}
    if api_key_env:
        key = os.environ.get(api_key_env)
        if key:
            headers["Authorization"] = f"Bearer {key}"
    return headers


def extract_error_message(body: str) -> str:
    """Best-effort human-readable message from a backend error body."""
    message = body.strip()
    try:
        data: Any = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(data.get("message"), str):
            message = data["message"]
        elif isinstance(error, dict) and isinstance(error.get("message"), str):
            message = error["message"]
        elif isinstance(error, str):
            message = error

    if "audio input is not supported" in message:
        message += _AUDIO_UNSUPPORTED_HINT
    return message[:_MAX_ERROR_MESSAGE_CHARS]


async def _safe_text(response: httpx.Response) -> str:
    try:
        await response.aread()
        return response.text
    except httpx.HTTPError:
        return ""


class CompletionStream:
    """Lazy, single-use sequence of fragments from one backend response.

    Iteration ends after the backend's completion marker. A body that ends
    without one, or a connection that drops mid-body, raises instead of
    ending quietly. The HTTP response is closed when iteration stops for any
    reason, or by ``aclose()``.
    """

    def __init__(
        self,
        response: httpx.Response,
        parser: FragmentParser,
        url: str,
        token: CancellationToken | None = None,
    ) -> None:
        self._response = response
        self._parser = parser
        self._url = url
        self._token = token
        self._closed = False

    @property
    def parser(self) -> FragmentParser:
        return self._parser

    def __aiter__(self) -> AsyncIterator[StreamFragment]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamFragment]:
        chunks = self._response.aiter_bytes()
        try:
            while True:
                try:
                    if self._token is not None:
                        chunk = await self._token.race(anext(chunks))
                    else:
                        chunk = await anext(chunks)
                except StopAsyncIteration:
                    break
                except httpx.TransportError as exc:
                    raise BackendUnreachableError(
                        self._url, f"stream interrupted: {exc or type(exc).__name__}"
                    ) from exc

                for fragment in self._parser.feed(chunk):
                    yield fragment
                    if fragment.final:
                        return

            for fragment in self._parser.finish():
                yield fragment
                if fragment.final:
                    return

            raise MalformedBackendPayloadError(
                f"{self._parser.protocol.value} stream ended before its completion marker"
            )
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Release the underlying connection. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


async def open_completion_stream(
    client: httpx.AsyncClient,
    profile: AskAudioProfile | AskTextProfile,
    request: CompletionRequest,
    token: CancellationToken | None = None,
) -> CompletionStream:
    """Send a streaming chat request and validate the handshake.

    Raises:
        UnsupportedConfigurationError: If the profile's protocol cannot carry
            the request (audio over NDJSON).
        BackendUnreachableError: On connect errors and timeouts.
        BackendRejectedError: On a non-2xx status.
        RequestCancelledError: If ``token`` is cancelled while waiting.
    """
    protocol = profile.protocol
    url = endpoint_url(protocol, profile.base_url)
    payload = build_payload(protocol, request)
    http_request = client.build_request(
        "POST",
        url,
        json=payload,
        headers=auth_headers(profile.api_key_env),
    )

    logger.info(
        "backend_request",
        url=url,
        protocol=protocol.value,
        model=request.model,
        audio=request.has_audio,
    )

    try:
        if token is not None:
            response = await token.race(client.send(http_request, stream=True))
        else:
            response = await client.send(http_request, stream=True)
    except httpx.TransportError as exc:
        logger.error("backend_unreachable", url=url, error=str(exc))
        raise BackendUnreachableError(url, str(exc) or type(exc).__name__) from exc

    if not response.is_success:
        body = await _safe_text(response)
        await response.aclose()
        message = extract_error_message(body)
        logger.error("backend_rejected", url=url, status=response.status_code, message=message)
        raise BackendRejectedError(response.status_code, message)

    return CompletionStream(response, create_parser(protocol), url, token)
