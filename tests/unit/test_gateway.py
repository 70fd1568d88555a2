"""Tests for echolite.gateway.orchestrator.Gateway.

Every path, successful or not, must leave the workspace root empty.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest
from structlog.testing import capture_logs

from echolite.config.store import InMemorySettingsStore
from echolite.exceptions import (
    BackendRejectedError,
    EngineNotImplementedError,
    InvalidRequestError,
    MalformedBackendPayloadError,
    MissingConfigError,
    ProcessFailedError,
    RequestCancelledError,
    UnsupportedConfigurationError,
)
from echolite.gateway.cancel import CancellationToken
from echolite.gateway.orchestrator import Gateway, GatewayStream
from echolite.gateway.workspace import WorkspaceFactory
from tests.helpers import (
    FAKE_NORMALIZED_WAV,
    FakeRunner,
    RecordingBackend,
    mock_http_client,
    ndjson_body,
    sse_body,
)


def _leftovers(root: Path) -> list[Path]:
    return list(root.iterdir()) if root.exists() else []


async def _read_all(stream: GatewayStream) -> str:
    return "".join([text async for text in stream])


def _make_gateway(
    settings: InMemorySettingsStore,
    workspaces: WorkspaceFactory,
    runner: FakeRunner,
    backend: object,
) -> Gateway:
    client = mock_http_client(backend)  # type: ignore[arg-type]
    return Gateway(settings, workspaces, runner, client)


class TestAskAudio:
    async def test_audio_sent_as_is(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        backend = RecordingBackend(sse_body(["Two ", "speakers."]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        stream = await gateway.ask_audio(wav_bytes, "How many speakers?")
        answer = await _read_all(stream)

        assert answer == "Two speakers."
        assert runner.executables == ["ffmpeg"]
        content = backend.last_json["messages"][0]["content"]  # type: ignore[index]
        assert content[0]["input_audio"]["data"] == base64.b64encode(FAKE_NORMALIZED_WAV).decode()
        assert content[1]["text"].endswith("How many speakers?")
        assert _leftovers(workspace_root) == []

    async def test_transcribe_first(
        self,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        wav_bytes: bytes,
    ) -> None:
        settings_store = InMemorySettingsStore(
            {
                "askAudio": {"baseURL": "http://omni.test", "transcribeFirst": True},
                "transcribe": {"modelPath": "/models/ggml-base.bin"},
            }
        )
        runner = FakeRunner(transcript="Alice: launch is Friday.")
        backend = RecordingBackend(sse_body(["Friday."]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        answer = await _read_all(await gateway.ask_audio(wav_bytes, "When is launch?"))

        assert answer == "Friday."
        assert runner.executables == ["ffmpeg", "whisper-cli"]
        messages = backend.last_json["messages"]
        assert messages[0]["role"] == "system"  # type: ignore[index]
        assert "Alice: launch is Friday." in messages[-1]["content"]  # type: ignore[index]
        assert _leftovers(workspace_root) == []

    @pytest.mark.parametrize("transcript", ["", "   \n"])
    async def test_transcribe_first_blank_transcript_rejected(
        self,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        wav_bytes: bytes,
        transcript: str,
    ) -> None:
        settings_store = InMemorySettingsStore(
            {
                "askAudio": {"baseURL": "http://omni.test", "transcribeFirst": True},
                "transcribe": {"modelPath": "/models/ggml-base.bin"},
            }
        )
        runner = FakeRunner(transcript=transcript)
        backend = RecordingBackend(sse_body(["hi"]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        with pytest.raises(InvalidRequestError, match="Transcription produced no text"):
            await gateway.ask_audio(wav_bytes, "When is launch?")

        assert backend.requests == []
        assert _leftovers(workspace_root) == []

    @pytest.mark.parametrize(
        ("audio", "instruction", "detail"),
        [
            (None, "question", "No audio uploaded"),
            (b"", "question", "No audio uploaded"),
            (b"RIFF", None, "Missing instruction"),
            (b"RIFF", "   ", "Missing instruction"),
        ],
    )
    async def test_input_validated_before_any_work(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        audio: bytes | None,
        instruction: str | None,
        detail: str,
    ) -> None:
        backend = RecordingBackend(sse_body(["x"]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        with pytest.raises(InvalidRequestError, match=detail):
            await gateway.ask_audio(audio, instruction)

        assert runner.calls == []
        assert backend.requests == []
        assert not workspace_root.exists()

    async def test_ndjson_without_transcription_unsupported(
        self,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        settings = InMemorySettingsStore({"askAudio": {"protocol": "ollama-ndjson"}})
        gateway = _make_gateway(settings, workspaces, runner, RecordingBackend())

        with pytest.raises(UnsupportedConfigurationError):
            await gateway.ask_audio(wav_bytes, "question")

        assert runner.calls == []
        assert not workspace_root.exists()

    async def test_missing_base_url(
        self, workspaces: WorkspaceFactory, runner: FakeRunner, wav_bytes: bytes
    ) -> None:
        settings = InMemorySettingsStore({"askAudio": {"baseURL": ""}})
        gateway = _make_gateway(settings, workspaces, runner, RecordingBackend())

        with pytest.raises(MissingConfigError, match="baseURL"):
            await gateway.ask_audio(wav_bytes, "question")
        assert runner.calls == []

    async def test_transcoder_failure_cleans_up(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        wav_bytes: bytes,
    ) -> None:
        runner = FakeRunner(fail_executable="ffmpeg")
        backend = RecordingBackend(sse_body(["x"]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        with pytest.raises(ProcessFailedError):
            await gateway.ask_audio(wav_bytes, "question")

        assert backend.requests == []
        assert _leftovers(workspace_root) == []

    async def test_backend_rejection_cleans_up(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        backend = RecordingBackend(b'{"error":"audio input is not supported"}', status_code=500)
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        with pytest.raises(BackendRejectedError, match="audio input is not supported"):
            await gateway.ask_audio(wav_bytes, "question")

        assert _leftovers(workspace_root) == []

    async def test_backend_without_text_is_malformed(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        gateway = _make_gateway(settings_store, workspaces, runner, RecordingBackend(sse_body([])))

        with pytest.raises(MalformedBackendPayloadError, match="without producing any text"):
            await gateway.ask_audio(wav_bytes, "question")

        assert _leftovers(workspace_root) == []

    async def test_failure_mid_stream_cleans_up(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        backend = RecordingBackend(sse_body(["partial ", "answer"], done=False))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)
        stream = await gateway.ask_audio(wav_bytes, "question")

        received: list[str] = []
        with pytest.raises(MalformedBackendPayloadError):
            async for text in stream:
                received.append(text)

        assert "".join(received) == "partial answer"
        assert _leftovers(workspace_root) == []

    async def test_client_cancel_mid_stream_logged_as_cancelled(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        async def first_event_then_stall() -> AsyncIterator[bytes]:
            yield sse_body(["partial "], done=False)
            await asyncio.Event().wait()

        def backend(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=first_event_then_stall())

        token = CancellationToken()
        gateway = _make_gateway(settings_store, workspaces, runner, backend)
        stream = await gateway.ask_audio(wav_bytes, "question", token)

        received: list[str] = []
        with capture_logs() as logs, pytest.raises(RequestCancelledError):
            async for text in stream:
                received.append(text)
                token.cancel()

        assert received == ["partial "]
        events = {entry["event"]: entry for entry in logs}
        assert events["answer_cancelled"]["log_level"] == "info"
        assert "answer_failed_mid_stream" not in events
        assert _leftovers(workspace_root) == []

    async def test_abandoned_stream_releases_resources(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        token = CancellationToken()
        backend = RecordingBackend(sse_body(["one ", "two ", "three"]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)
        stream = await gateway.ask_audio(wav_bytes, "question", token)
        assert _leftovers(workspace_root) != []

        fragments = aiter(stream)
        assert await anext(fragments) == "one "
        await fragments.aclose()  # type: ignore[attr-defined]

        assert token.cancelled
        assert _leftovers(workspace_root) == []

    async def test_aclose_without_iterating(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        gateway = _make_gateway(
            settings_store, workspaces, runner, RecordingBackend(sse_body(["x"]))
        )
        stream = await gateway.ask_audio(wav_bytes, "question")

        await stream.aclose()
        await stream.aclose()

        assert _leftovers(workspace_root) == []

    async def test_cancel_during_handshake(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        async def hang(request: httpx.Request) -> httpx.Response:
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

        token = CancellationToken()
        gateway = _make_gateway(settings_store, workspaces, runner, hang)
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        with pytest.raises(RequestCancelledError):
            await gateway.ask_audio(wav_bytes, "question", token)

        assert _leftovers(workspace_root) == []


class TestComplete:
    async def test_streams_answer(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
    ) -> None:
        backend = RecordingBackend(ndjson_body(["Ship ", "on Friday."]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        answer = await _read_all(await gateway.complete("Alice: Friday.", "When?"))

        assert answer == "Ship on Friday."
        assert str(backend.requests[0].url) == "http://ollama.test/api/chat"
        assert runner.calls == []
        assert _leftovers(workspace_root) == []

    @pytest.mark.parametrize(
        ("transcript", "instruction"),
        [(None, "q"), ("", "q"), ("t", None), ("t", "  \n")],
    )
    async def test_blank_input_rejected(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        runner: FakeRunner,
        transcript: str | None,
        instruction: str | None,
    ) -> None:
        backend = RecordingBackend(ndjson_body(["x"]))
        gateway = _make_gateway(settings_store, workspaces, runner, backend)

        with pytest.raises(InvalidRequestError, match="Missing transcript or instruction"):
            await gateway.complete(transcript, instruction)
        assert backend.requests == []


class TestTranscribe:
    async def test_returns_transcript(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        wav_bytes: bytes,
    ) -> None:
        runner = FakeRunner(transcript="\nCarol: hello.\n")
        gateway = _make_gateway(settings_store, workspaces, runner, RecordingBackend())

        assert await gateway.transcribe(wav_bytes) == "Carol: hello."
        assert runner.executables == ["ffmpeg", "whisper-cli"]
        assert _leftovers(workspace_root) == []

    async def test_remote_engine_not_implemented_without_side_effects(
        self,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        settings = InMemorySettingsStore({"transcribe": {"engine": "remote-api"}})
        gateway = _make_gateway(settings, workspaces, runner, RecordingBackend())

        with pytest.raises(EngineNotImplementedError):
            await gateway.transcribe(wav_bytes)

        assert runner.calls == []
        assert not workspace_root.exists()

    async def test_missing_model_path(
        self,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        runner: FakeRunner,
        wav_bytes: bytes,
    ) -> None:
        gateway = _make_gateway(InMemorySettingsStore(), workspaces, runner, RecordingBackend())

        with pytest.raises(MissingConfigError, match="modelPath"):
            await gateway.transcribe(wav_bytes)

        assert runner.calls == []
        assert not workspace_root.exists()

    async def test_engine_failure_cleans_up(
        self,
        settings_store: InMemorySettingsStore,
        workspaces: WorkspaceFactory,
        workspace_root: Path,
        wav_bytes: bytes,
    ) -> None:
        runner = FakeRunner(fail_executable="whisper-cli")
        gateway = _make_gateway(settings_store, workspaces, runner, RecordingBackend())

        with pytest.raises(ProcessFailedError):
            await gateway.transcribe(wav_bytes)

        assert _leftovers(workspace_root) == []
