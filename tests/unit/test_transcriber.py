"""Tests for echolite.workers.transcriber — engine dispatch and CLI adapter."""

from __future__ import annotations

from pathlib import Path

import pytest

from echolite._types import RequestKind
from echolite.config.profiles import TranscribeProfile
from echolite.exceptions import EngineNotImplementedError, MissingConfigError, ProcessFailedError
from echolite.gateway.workspace import WorkspaceFactory
from echolite.workers.transcriber import Transcriber, build_cli_args, default_thread_count
from tests.helpers import FakeRunner


def _profile(**overrides: object) -> TranscribeProfile:
    fields: dict[str, object] = {"modelPath": "/models/ggml-base.en.bin", "threads": 4}
    fields.update(overrides)
    return TranscribeProfile.model_validate(fields)


class TestBuildCliArgs:
    def test_arguments(self, tmp_path: Path) -> None:
        profile = _profile(language="en")
        args = build_cli_args(profile, tmp_path / "a.wav", tmp_path / "a-transcript")

        assert args == [
            "-m",
            "/models/ggml-base.en.bin",
            "-f",
            str(tmp_path / "a.wav"),
            "-of",
            str(tmp_path / "a-transcript"),
            "-otxt",
            "-l",
            "en",
            "-t",
            "4",
            "-np",
        ]

    def test_threads_default_to_cpu_count(self, tmp_path: Path) -> None:
        profile = _profile(threads=None)
        args = build_cli_args(profile, tmp_path / "a.wav", tmp_path / "base")
        assert args[args.index("-t") + 1] == str(default_thread_count())

    def test_empty_language_means_auto(self, tmp_path: Path) -> None:
        args = build_cli_args(_profile(language=""), tmp_path / "a.wav", tmp_path / "b")
        assert args[args.index("-l") + 1] == "auto"


class TestTranscriberCheck:
    def test_remote_engine_not_implemented(self) -> None:
        transcriber = Transcriber(FakeRunner())
        with pytest.raises(EngineNotImplementedError) as exc_info:
            transcriber.check(_profile(engine="remote-api"))
        assert exc_info.value.engine == "remote-api"

    def test_missing_model_path(self) -> None:
        transcriber = Transcriber(FakeRunner())
        with pytest.raises(MissingConfigError, match="modelPath"):
            transcriber.check(_profile(modelPath="  "))

    def test_missing_binary_path(self) -> None:
        transcriber = Transcriber(FakeRunner())
        with pytest.raises(MissingConfigError, match="binaryPath"):
            transcriber.check(_profile(binaryPath=""))


class TestTranscribe:
    async def test_reads_and_strips_engine_output(self, workspaces: WorkspaceFactory) -> None:
        runner = FakeRunner(transcript="\n  Bob: the budget is approved.  \n")
        ws = workspaces.acquire(RequestKind.TRANSCRIBE)

        text = await Transcriber(runner).transcribe(ws.wav_path, ws, _profile())

        assert text == "Bob: the budget is approved."
        executable, args = runner.calls[0]
        assert executable == "whisper-cli"
        assert args[args.index("-of") + 1] == str(ws.transcript_base)

    async def test_remote_engine_spawns_nothing(self, workspaces: WorkspaceFactory) -> None:
        runner = FakeRunner()
        ws = workspaces.acquire(RequestKind.TRANSCRIBE)

        with pytest.raises(EngineNotImplementedError):
            await Transcriber(runner).transcribe(ws.wav_path, ws, _profile(engine="remote-api"))

        assert runner.calls == []

    async def test_missing_output_file_is_process_failure(
        self, workspaces: WorkspaceFactory
    ) -> None:
        runner = FakeRunner(write_transcript=False)
        ws = workspaces.acquire(RequestKind.TRANSCRIBE)

        with pytest.raises(ProcessFailedError, match="no output file"):
            await Transcriber(runner).transcribe(ws.wav_path, ws, _profile())

    async def test_engine_failure_propagates(self, workspaces: WorkspaceFactory) -> None:
        runner = FakeRunner(fail_executable="whisper-cli", diagnostics="failed to load model")
        ws = workspaces.acquire(RequestKind.TRANSCRIBE)

        with pytest.raises(ProcessFailedError, match="failed to load model"):
            await Transcriber(runner).transcribe(ws.wav_path, ws, _profile())
