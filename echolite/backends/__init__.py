"""Chat completion backends: one parser and payload builder per wire protocol."""

from __future__ import annotations

from typing import Any

from echolite._types import CompletionRequest, StreamProtocol
from echolite.backends import ndjson, sse
from echolite.backends.interface import FragmentParser

__all__ = ["FragmentParser", "build_payload", "create_parser", "endpoint_url"]


def create_parser(protocol: StreamProtocol) -> FragmentParser:
    """Create a fresh stream parser for ``protocol``."""
    if protocol is StreamProtocol.OPENAI_SSE:
        return sse.SseEventParser()
    if protocol is StreamProtocol.OLLAMA_NDJSON:
        return ndjson.NdjsonLineParser()
    msg = f"Unknown stream protocol: {protocol!r}"
    raise ValueError(msg)


def endpoint_url(protocol: StreamProtocol, base_url: str) -> str:
    """Chat endpoint for ``protocol`` under ``base_url``."""
    if protocol is StreamProtocol.OPENAI_SSE:
        return sse.endpoint_url(base_url)
    return ndjson.endpoint_url(base_url)


def build_payload(protocol: StreamProtocol, request: CompletionRequest) -> dict[str, Any]:
    """Streaming request body for ``protocol``.

    Raises:
        UnsupportedConfigurationError: If the protocol cannot carry the request.
    """
    if protocol is StreamProtocol.OPENAI_SSE:
        return sse.build_payload(request)
    return ndjson.build_payload(request)
