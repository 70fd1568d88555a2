"""Ollama-style chat streamed as newline-delimited JSON.

Wire format::

    {"message":{"role":"assistant","content":"Hel"},"done":false}
    {"message":{"role":"assistant","content":"lo"},"done":false}
    {"message":{"role":"assistant","content":""},"done":true,"eval_count":12}

``done: true`` ends the stream after its own content is forwarded; the
connection is not drained.
"""

from __future__ import annotations

import json
from typing import Any

from echolite._types import CompletionRequest, StreamFragment, StreamProtocol
from echolite.backends.interface import FragmentParser
from echolite.exceptions import MalformedBackendPayloadError, UnsupportedConfigurationError
from echolite.logging import get_logger

logger = get_logger("backends.ndjson")


def extract_content(obj: dict[str, Any]) -> str:
    """Content of one line: ``message.content`` (/api/chat) or ``response`` (/api/generate)."""
    message = obj.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str) and content:
            return content
    response = obj.get("response")
    return response if isinstance(response, str) else ""


class NdjsonLineParser(FragmentParser):
    """Parser for one JSON object per line with a ``done`` flag."""

    @property
    def protocol(self) -> StreamProtocol:
        return StreamProtocol.OLLAMA_NDJSON

    def parse_line(self, line: str) -> StreamFragment | None:
        if not line:
            return None
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("ndjson_line_unparsable", size=len(line))
            return None
        if not isinstance(obj, dict):
            return None
        if obj.get("error"):
            msg = f"Backend reported an error mid-stream: {obj['error']}"
            raise MalformedBackendPayloadError(msg)
        text = extract_content(obj)
        if obj.get("done") is True:
            return StreamFragment(text, final=True)
        if not text:
            return None
        return StreamFragment(text)


def endpoint_url(base_url: str) -> str:
    """Native chat URL. An OpenAI-compat ``/v1`` suffix on the base is dropped."""
    base = base_url.rstrip("/")
    if base.endswith("/v1"):
        base = base[: -len("/v1")]
    return f"{base}/api/chat"


def build_payload(request: CompletionRequest) -> dict[str, Any]:
    """Ollama /api/chat body.

    Raises:
        UnsupportedConfigurationError: If the request carries audio.
    """
    if request.has_audio:
        raise UnsupportedConfigurationError(
            "The ollama-ndjson protocol does not accept audio input. "
            "Use protocol 'openai-sse' or enable transcribeFirst for this profile."
        )
    return {
        "model": request.model,
        "stream": True,
        "options": {"temperature": request.temperature},
        "messages": [{"role": m.role, "content": m.text} for m in request.messages],
    }
