"""Backend profiles, one per use case, and their merge and clamp rules.

The persisted document uses camelCase keys (``askAudio``, ``baseURL``,
``apiKeyEnv``...). Python code uses snake_case attributes; both spellings are
accepted wherever a document is merged.

Merge rules:
- fields absent from the overlay keep the base value;
- unknown sections and fields are ignored;
- nested profiles are merged field by field, never replaced wholesale.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from echolite._types import StreamProtocol, TranscriptionEngine
from echolite.exceptions import ConfigValidationError
from echolite.logging import get_logger

logger = get_logger("config.profiles")

TEMPERATURE_MIN: float = 0.0
TEMPERATURE_MAX: float = 2.0
DEFAULT_TEMPERATURE: float = 0.2


class _Profile(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
    )


class AskAudioProfile(_Profile):
    """Question answering directly against uploaded audio."""

    model: str = "qwen2.5-omni-3b"
    base_url: str = Field(default="http://localhost:8080", alias="baseURL")
    api_key_env: str = Field(default="LLM_API_KEY", alias="apiKeyEnv")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX)
    system_prompt: str = Field(
        default="You are an assistant that answers questions directly from audio content.",
        alias="systemPrompt",
    )
    protocol: StreamProtocol = StreamProtocol.OPENAI_SSE
    # Transcribe locally and send text instead of audio (text-only chat models).
    transcribe_first: bool = Field(default=False, alias="transcribeFirst")


class TranscribeProfile(_Profile):
    """Speech-to-text.

    ``model``/``base_url``/``api_key_env`` describe a remote engine and are
    kept for when ``remote-api`` gets an implementation.
    """

    engine: TranscriptionEngine = TranscriptionEngine.LOCAL_CLI
    binary_path: str = Field(default="whisper-cli", alias="binaryPath")
    model_path: str = Field(default="", alias="modelPath")
    language: str = "auto"
    threads: int | None = Field(default=None, ge=1, le=256)
    model: str = "whisper-large-v3"
    base_url: str = Field(default="http://localhost:9090/v1", alias="baseURL")
    api_key_env: str = Field(default="ASR_API_KEY", alias="apiKeyEnv")
    response_format: Literal["text", "json"] = Field(default="text", alias="responseFormat")
    system_prompt: str = Field(
        default="Transcribe clearly with speaker cues when possible.",
        alias="systemPrompt",
    )


class AskTextProfile(_Profile):
    """Question answering against a transcript."""

    model: str = "qwen3:8b"
    base_url: str = Field(default="http://localhost:11434", alias="baseURL")
    api_key_env: str = Field(default="LLM_API_KEY", alias="apiKeyEnv")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX)
    system_prompt: str = Field(
        default="You analyze meeting transcripts precisely and answer user instructions.",
        alias="systemPrompt",
    )
    protocol: StreamProtocol = StreamProtocol.OLLAMA_NDJSON


class ModelsConfig(_Profile):
    """The three profiles, as persisted."""

    ask_audio: AskAudioProfile = Field(default_factory=AskAudioProfile, alias="askAudio")
    transcribe: TranscribeProfile = Field(default_factory=TranscribeProfile)
    ask_text: AskTextProfile = Field(default_factory=AskTextProfile, alias="askText")

    def to_document(self) -> dict[str, Any]:
        """Serialize with persisted (camelCase) keys."""
        return self.model_dump(by_alias=True, mode="json")


DEFAULT_CONFIG = ModelsConfig()

# Persisted section name -> profile class.
_SECTIONS: dict[str, type[_Profile]] = {
    "askAudio": AskAudioProfile,
    "transcribe": TranscribeProfile,
    "askText": AskTextProfile,
}

# Sections whose temperature is clamped on save.
_TEMPERATURE_SECTIONS = ("askAudio", "askText")


def _accepted_keys(profile_cls: type[_Profile]) -> dict[str, str]:
    """Map every accepted input spelling of a field to its persisted key."""
    keys: dict[str, str] = {}
    for name, info in profile_cls.model_fields.items():
        alias = info.alias or name
        keys[name] = alias
        keys[alias] = alias
    return keys


def _section_patch(overlay: Mapping[str, Any], section: str) -> Mapping[str, Any] | None:
    accepted = _accepted_keys(ModelsConfig)
    for key, value in overlay.items():
        if accepted.get(key) == section and isinstance(value, Mapping):
            return value
    return None


def merge_config(
    base: ModelsConfig,
    overlay: Mapping[str, Any],
    *,
    strict: bool = False,
) -> ModelsConfig:
    """Merge a (possibly partial) document into ``base``, field by field.

    Each overlay field is validated on its own. Invalid values are skipped
    with a warning, or collected and raised when ``strict`` is set.

    Raises:
        ConfigValidationError: In strict mode, if any field failed validation.
    """
    errors: list[str] = []
    sections: dict[str, _Profile] = {
        "askAudio": base.ask_audio,
        "transcribe": base.transcribe,
        "askText": base.ask_text,
    }

    for section, profile_cls in _SECTIONS.items():
        patch = _section_patch(overlay, section)
        if not patch:
            continue
        accepted = _accepted_keys(profile_cls)
        current = sections[section].model_dump(by_alias=True, mode="json")
        for key, value in patch.items():
            target = accepted.get(key)
            if target is None:
                continue
            trial = {**current, target: value}
            try:
                profile_cls.model_validate(trial)
            except ValidationError as exc:
                reason = exc.errors()[0]["msg"]
                errors.append(f"{section}.{target}: {reason}")
                continue
            current = trial
        sections[section] = profile_cls.model_validate(current)

    if errors:
        if strict:
            raise ConfigValidationError(errors)
        logger.warning("config_fields_ignored", errors=errors)

    return ModelsConfig(
        ask_audio=sections["askAudio"],
        transcribe=sections["transcribe"],
        ask_text=sections["askText"],
    )


def merge_with_defaults(overlay: Mapping[str, Any], *, strict: bool = False) -> ModelsConfig:
    """Fill every field absent from ``overlay`` from ``DEFAULT_CONFIG``."""
    return merge_config(DEFAULT_CONFIG, overlay, strict=strict)


def clamp_temperature(value: Any, fallback: float) -> float:
    """Clamp a submitted temperature into ``[0, 2]``.

    Non-numeric and non-finite input resolves to ``fallback`` instead of
    rejecting the whole document.
    """
    if isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    return min(TEMPERATURE_MAX, max(TEMPERATURE_MIN, number))


def clamp_candidate(candidate: Mapping[str, Any], previous: ModelsConfig) -> dict[str, Any]:
    """Return a copy of ``candidate`` with temperatures clamped.

    The fallback for unusable input is the temperature stored in ``previous``.
    """
    clamped: dict[str, Any] = dict(candidate)
    stored = previous.to_document()
    accepted = _accepted_keys(ModelsConfig)
    for key, value in candidate.items():
        section = accepted.get(key)
        if section not in _TEMPERATURE_SECTIONS or not isinstance(value, Mapping):
            continue
        if "temperature" not in value:
            continue
        patch = dict(value)
        patch["temperature"] = clamp_temperature(
            value["temperature"], stored[section]["temperature"]
        )
        clamped[key] = patch
    return clamped
