"""Gateway orchestrator — composes workspace, normalizer, transcriber, and backends.

Each operation validates input before allocating anything, then runs its
pre-flight stages (workspace, transcoding, transcription, backend handshake
and first fragment) before returning. Failures during pre-flight therefore
surface as exceptions the HTTP layer can still map to a status code.

Every resource a request acquires is registered on one ``AsyncExitStack``.
That stack is closed exactly once: when pre-flight fails, or when the
returned ``GatewayStream`` finishes, fails, or is abandoned by the caller.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from pathlib import Path
from typing import TYPE_CHECKING

from echolite._types import RequestKind, StreamFragment, StreamProtocol
from echolite.backends.client import open_completion_stream
from echolite.exceptions import (
    EcholiteError,
    InvalidRequestError,
    MalformedBackendPayloadError,
    MissingConfigError,
    RequestCancelledError,
    UnsupportedConfigurationError,
)
from echolite.gateway import prompts
from echolite.gateway.cancel import CancellationToken
from echolite.logging import get_logger
from echolite.preprocessing.normalize import AudioNormalizer
from echolite.workers.transcriber import Transcriber

if TYPE_CHECKING:
    import httpx

    from echolite._types import CompletionRequest
    from echolite.config.profiles import AskAudioProfile, AskTextProfile
    from echolite.config.store import SettingsProvider
    from echolite.gateway.workspace import WorkspaceFactory
    from echolite.workers.process import ProcessRunner

logger = get_logger("gateway.orchestrator")


def _read_bytes(path: Path) -> bytes:
    """Read file contents (blocking). Run via asyncio.to_thread."""
    return path.read_bytes()


def _require_text(value: str | None) -> bool:
    return value is not None and bool(value.strip())


def _check_chat_profile(section: str, profile: AskAudioProfile | AskTextProfile) -> None:
    if not profile.base_url.strip():
        raise MissingConfigError(section, "baseURL")
    if not profile.model.strip():
        raise MissingConfigError(section, "model")


class GatewayStream:
    """Answer text for one request, delivered fragment by fragment.

    Owns the request's resources: they are released when iteration ends,
    fails, or is cancelled, or when ``aclose()`` is called.
    """

    def __init__(
        self,
        *,
        first_text: str,
        fragments: AsyncIterator[StreamFragment],
        resources: AsyncExitStack,
        token: CancellationToken,
    ) -> None:
        self._first_text = first_text
        self._fragments = fragments
        self._resources = resources
        self._token = token
        self._closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        sent = 0
        try:
            sent += len(self._first_text)
            yield self._first_text
            async for fragment in self._fragments:
                if fragment.text:
                    sent += len(fragment.text)
                    yield fragment.text
            logger.info("answer_done", chars=sent)
        except (asyncio.CancelledError, GeneratorExit, RequestCancelledError):
            self._token.cancel()
            logger.info("answer_cancelled", chars_sent=sent)
            raise
        except EcholiteError as exc:
            # Status is already sent; re-raising aborts the chunked body.
            logger.error(
                "answer_failed_mid_stream",
                error=exc.category,
                detail=exc.detail,
                chars_sent=sent,
            )
            raise
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Release every resource of the request. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._resources.aclose()


class Gateway:
    """Entry point for the three gateway operations.

    Collaborators are injected so tests can substitute in-memory settings,
    fake process runners, and mock HTTP transports.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        workspaces: WorkspaceFactory,
        runner: ProcessRunner,
        http_client: httpx.AsyncClient,
        *,
        ffmpeg_path: str = "ffmpeg",
    ) -> None:
        self._settings = settings
        self._workspaces = workspaces
        self._http = http_client
        self._normalizer = AudioNormalizer(runner, ffmpeg_path)
        self._transcriber = Transcriber(runner)

    async def ask_audio(
        self,
        audio: bytes | None,
        instruction: str | None,
        token: CancellationToken | None = None,
    ) -> GatewayStream:
        """Answer ``instruction`` about ``audio``.

        Raises:
            InvalidRequestError: If audio or instruction is missing.
            EcholiteError: Any stage failure (process, backend, configuration).
        """
        if not audio:
            raise InvalidRequestError("No audio uploaded")
        if not _require_text(instruction):
            raise InvalidRequestError("Missing instruction")
        assert instruction is not None

        token = token or CancellationToken()
        config = self._settings.load()
        profile = config.ask_audio

        _check_chat_profile("askAudio", profile)
        if profile.transcribe_first:
            self._transcriber.check(config.transcribe)
        elif profile.protocol is StreamProtocol.OLLAMA_NDJSON:
            raise UnsupportedConfigurationError(
                "askAudio uses protocol 'ollama-ndjson', which cannot carry audio. "
                "Use 'openai-sse' or enable transcribeFirst."
            )

        logger.info(
            "ask_audio_request",
            audio_bytes=len(audio),
            transcribe_first=profile.transcribe_first,
        )

        resources = AsyncExitStack()
        try:
            workspace = await resources.enter_async_context(
                self._workspaces.acquire(RequestKind.ASK_AUDIO)
            )
            wav_path = await self._normalizer.normalize(audio, workspace, token)

            if profile.transcribe_first:
                transcript = await self._transcriber.transcribe(
                    wav_path, workspace, config.transcribe, token
                )
                if not _require_text(transcript):
                    raise InvalidRequestError("Transcription produced no text")
                request = prompts.transcript_question(
                    model=profile.model,
                    temperature=profile.temperature,
                    system_prompt=profile.system_prompt,
                    transcript=transcript,
                    instruction=instruction,
                )
            else:
                wav_bytes = await asyncio.to_thread(_read_bytes, wav_path)
                request = prompts.audio_question(
                    model=profile.model,
                    temperature=profile.temperature,
                    system_prompt=profile.system_prompt,
                    instruction=instruction,
                    audio_b64=base64.b64encode(wav_bytes).decode("ascii"),
                )

            return await self._open_answer(profile, request, resources, token)
        except BaseException:
            await resources.aclose()
            raise

    async def complete(
        self,
        transcript: str | None,
        instruction: str | None,
        token: CancellationToken | None = None,
    ) -> GatewayStream:
        """Answer ``instruction`` using only ``transcript``.

        Raises:
            InvalidRequestError: If transcript or instruction is missing or blank.
            EcholiteError: Backend or configuration failure.
        """
        if not _require_text(transcript) or not _require_text(instruction):
            raise InvalidRequestError("Missing transcript or instruction")
        assert transcript is not None and instruction is not None

        token = token or CancellationToken()
        profile = self._settings.load().ask_text
        _check_chat_profile("askText", profile)

        logger.info(
            "complete_request",
            transcript_chars=len(transcript),
            protocol=profile.protocol.value,
        )

        request = prompts.transcript_question(
            model=profile.model,
            temperature=profile.temperature,
            system_prompt=profile.system_prompt,
            transcript=transcript,
            instruction=instruction,
        )

        resources = AsyncExitStack()
        try:
            await resources.enter_async_context(self._workspaces.acquire(RequestKind.COMPLETE))
            return await self._open_answer(profile, request, resources, token)
        except BaseException:
            await resources.aclose()
            raise

    async def transcribe(
        self,
        audio: bytes | None,
        token: CancellationToken | None = None,
    ) -> str:
        """Transcribe ``audio`` with the configured engine.

        Engine and required-field checks run before any workspace file is
        written or any process spawned.

        Raises:
            InvalidRequestError: If audio is missing.
            EngineNotImplementedError: If the engine is not ``local-cli``.
            MissingConfigError: If the model path is not configured.
            ProcessFailedError: If transcoding or the engine fails.
        """
        if not audio:
            raise InvalidRequestError("No audio uploaded")

        profile = self._settings.load().transcribe
        self._transcriber.check(profile)

        logger.info(
            "transcribe_request",
            audio_bytes=len(audio),
            engine=profile.engine.value,
        )

        async with self._workspaces.acquire(RequestKind.TRANSCRIBE) as workspace:
            wav_path = await self._normalizer.normalize(audio, workspace, token)
            return await self._transcriber.transcribe(wav_path, workspace, profile, token)

    async def _open_answer(
        self,
        profile: AskAudioProfile | AskTextProfile,
        request: CompletionRequest,
        resources: AsyncExitStack,
        token: CancellationToken,
    ) -> GatewayStream:
        """Handshake with the backend and wait for the first non-empty fragment."""
        stream = await open_completion_stream(self._http, profile, request, token)
        resources.push_async_callback(stream.aclose)

        fragments = aiter(stream)
        first_text = ""
        while not first_text:
            try:
                fragment = await anext(fragments)
            except StopAsyncIteration:
                fragment = StreamFragment("", final=True)
            first_text = fragment.text
            if fragment.final and not first_text:
                raise MalformedBackendPayloadError("Backend finished without producing any text")

        return GatewayStream(
            first_text=first_text,
            fragments=fragments,
            resources=resources,
            token=token,
        )
