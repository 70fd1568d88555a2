"""OpenAI-style chat completions streamed as Server-Sent Events.

Wire format::

    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: {"choices":[{"delta":{"content":"lo"}}]}
    data: [DONE]

When ``data: [DONE]`` arrives the stream ends and anything still buffered
behind it is discarded without being parsed. Backends that emit meaningful
events after the terminator would lose them; none of the supported ones do.
"""

from __future__ import annotations

import json
from typing import Any

from echolite._audio_constants import NORMALIZED_AUDIO_FORMAT
from echolite._types import ChatMessage, CompletionRequest, StreamFragment, StreamProtocol
from echolite.backends.interface import FragmentParser
from echolite.exceptions import MalformedBackendPayloadError
from echolite.logging import get_logger

logger = get_logger("backends.sse")

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


def _text_of(content: Any) -> str:
    """Text of a message/delta ``content`` (plain string or content parts)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return ""


def extract_delta_text(event: Any) -> str:
    """Incremental text of one chat completion chunk."""
    if not isinstance(event, dict):
        return ""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    choice = choices[0]
    for key in ("delta", "message"):
        holder = choice.get(key)
        if isinstance(holder, dict):
            text = _text_of(holder.get("content"))
            if text:
                return text
    text = choice.get("text")
    return text if isinstance(text, str) else ""


class SseEventParser(FragmentParser):
    """Parser for ``data: <json>`` lines terminated by ``data: [DONE]``."""

    @property
    def protocol(self) -> StreamProtocol:
        return StreamProtocol.OPENAI_SSE

    def parse_line(self, line: str) -> StreamFragment | None:
        # Blank keep-alives, comments (":"), and event:/id: fields carry no text.
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX) :].strip()
        if payload == DONE_MARKER:
            return StreamFragment("", final=True)
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            # Partial JSON can straddle network reads on some servers.
            logger.debug("sse_event_unparsable", size=len(payload))
            return None
        if isinstance(event, dict) and event.get("error"):
            error = event["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise MalformedBackendPayloadError(f"Backend reported an error mid-stream: {message}")
        text = extract_delta_text(event)
        if not text:
            return None
        return StreamFragment(text)


def endpoint_url(base_url: str) -> str:
    """Chat completions URL; a base already ending in ``/v1`` is not doubled."""
    base = base_url.rstrip("/")
    if base.endswith("/v1"):
        return f"{base}/chat/completions"
    return f"{base}/v1/chat/completions"


def _message_payload(message: ChatMessage) -> dict[str, Any]:
    if message.audio_b64 is None:
        return {"role": message.role, "content": message.text}
    return {
        "role": message.role,
        "content": [
            {
                "type": "input_audio",
                "input_audio": {"data": message.audio_b64, "format": NORMALIZED_AUDIO_FORMAT},
            },
            {"type": "text", "text": message.text},
        ],
    }


def build_payload(request: CompletionRequest) -> dict[str, Any]:
    return {
        "model": request.model,
        "stream": True,
        "temperature": request.temperature,
        "messages": [_message_payload(m) for m in request.messages],
    }
