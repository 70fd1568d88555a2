"""Core types for EchoLite.

Enums and dataclasses shared by the gateway, backends, and HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TranscriptionEngine(Enum):
    """Transcription backend kind.

    Only LOCAL_CLI has an implementation; REMOTE_API is accepted by the
    configuration so it can be selected, and fails as not implemented.
    """

    LOCAL_CLI = "local-cli"
    REMOTE_API = "remote-api"


class StreamProtocol(Enum):
    """Wire protocol spoken by a chat completion backend."""

    OPENAI_SSE = "openai-sse"  # data: <json> lines, terminated by data: [DONE]
    OLLAMA_NDJSON = "ollama-ndjson"  # one JSON object per line, "done": true ends


class RequestKind(Enum):
    """Gateway operation that owns a workspace."""

    ASK_AUDIO = "ask-audio"
    TRANSCRIBE = "transcribe"
    COMPLETE = "complete"


class ResponseFormat(Enum):
    """Response format for the transcription endpoint."""

    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True, slots=True)
class StreamFragment:
    """One incremental piece of backend-generated text.

    ``final`` marks the end of the stream; a final fragment may still carry
    trailing text that must be forwarded before closing.
    """

    text: str
    final: bool = False


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One chat message handed to a completion backend.

    ``audio_b64`` carries a base64-encoded normalized WAV for audio-capable
    backends; it is ``None`` for text-only messages.
    """

    role: str
    text: str
    audio_b64: str | None = None


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """Backend-agnostic chat completion request."""

    model: str
    messages: tuple[ChatMessage, ...]
    temperature: float

    @property
    def has_audio(self) -> bool:
        return any(m.audio_b64 is not None for m in self.messages)
