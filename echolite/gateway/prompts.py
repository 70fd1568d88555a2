"""Backend request composition for each gateway operation.

Ordering contract:
- ask-audio (audio sent as-is): a single user message carrying the audio
  part, then a text part holding the profile system prompt, a blank line,
  and the caller's instruction. No system message is
  sent with audio.
- transcript questions (``complete``, and ask-audio with ``transcribe_first``):
  a ``system`` message with the profile system prompt, then a ``user``
  message with the instruction before the transcript.
"""

from __future__ import annotations

from echolite._types import ChatMessage, CompletionRequest

TRANSCRIPT_PREAMBLE = (
    "Follow the INSTRUCTION using ONLY the TRANSCRIPT. "
    "Be concise and cite exact quotes when helpful."
)


def compose_instruction(system_prompt: str, instruction: str) -> str:
    """System prompt first, then the caller's instruction."""
    if system_prompt.strip():
        return f"{system_prompt}\n\n{instruction}"
    return instruction


def transcript_user_text(transcript: str, instruction: str) -> str:
    return f"{TRANSCRIPT_PREAMBLE}\n\nINSTRUCTION:\n{instruction}\n\nTRANSCRIPT:\n{transcript}"


def audio_question(
    *,
    model: str,
    temperature: float,
    system_prompt: str,
    instruction: str,
    audio_b64: str,
) -> CompletionRequest:
    message = ChatMessage(
        role="user",
        text=compose_instruction(system_prompt, instruction),
        audio_b64=audio_b64,
    )
    return CompletionRequest(model=model, messages=(message,), temperature=temperature)


def transcript_question(
    *,
    model: str,
    temperature: float,
    system_prompt: str,
    transcript: str,
    instruction: str,
) -> CompletionRequest:
    messages: list[ChatMessage] = []
    if system_prompt.strip():
        messages.append(ChatMessage(role="system", text=system_prompt))
    messages.append(ChatMessage(role="user", text=transcript_user_text(transcript, instruction)))
    return CompletionRequest(model=model, messages=tuple(messages), temperature=temperature)
