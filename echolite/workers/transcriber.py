"""Transcription adapter: normalized waveform in, transcript text out.

Engines:
- ``local-cli``: a whisper.cpp-style executable that writes ``<base>.txt``.
- ``remote-api``: accepted by the configuration, not implemented; fails
  immediately without spawning anything.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

from echolite._types import TranscriptionEngine
from echolite.exceptions import EngineNotImplementedError, MissingConfigError, ProcessFailedError
from echolite.logging import get_logger

if TYPE_CHECKING:
    from echolite.config.profiles import TranscribeProfile
    from echolite.gateway.cancel import CancellationToken
    from echolite.gateway.workspace import Workspace
    from echolite.workers.process import ProcessRunner

logger = get_logger("workers.transcriber")


def default_thread_count() -> int:
    return os.cpu_count() or 1


def build_cli_args(
    profile: TranscribeProfile,
    wav_path: Path,
    output_base: Path,
) -> list[str]:
    """Arguments for the local engine.

    ``-otxt`` with ``-of`` makes the engine write ``<output_base>.txt``;
    ``-np`` keeps its progress output off stderr so diagnostics stay short.
    """
    threads = profile.threads or default_thread_count()
    return [
        "-m",
        profile.model_path,
        "-f",
        str(wav_path),
        "-of",
        str(output_base),
        "-otxt",
        "-l",
        profile.language or "auto",
        "-t",
        str(threads),
        "-np",
    ]


def _read_text(path: Path) -> str:
    """Read file contents (blocking). Run via asyncio.to_thread."""
    return path.read_text(encoding="utf-8", errors="replace")


class Transcriber:
    """Dispatches a transcription to the engine named by the profile."""

    def __init__(self, runner: ProcessRunner) -> None:
        self._runner = runner

    def check(self, profile: TranscribeProfile) -> None:
        """Fail fast on configuration that can never succeed.

        Called before any workspace file exists or any process is spawned.

        Raises:
            EngineNotImplementedError: For any engine other than ``local-cli``.
            MissingConfigError: If the model file path is empty.
        """
        if profile.engine is not TranscriptionEngine.LOCAL_CLI:
            raise EngineNotImplementedError(profile.engine.value)
        if not profile.model_path.strip():
            raise MissingConfigError("transcribe", "modelPath")
        if not profile.binary_path.strip():
            raise MissingConfigError("transcribe", "binaryPath")

    async def transcribe(
        self,
        wav_path: Path,
        workspace: Workspace,
        profile: TranscribeProfile,
        token: CancellationToken | None = None,
    ) -> str:
        """Transcribe a normalized waveform.

        Returns:
            Transcript text, stripped of surrounding whitespace.

        Raises:
            EngineNotImplementedError: For unimplemented engines.
            MissingConfigError: If required profile fields are empty.
            ProcessFailedError: If the engine fails or writes no output file.
        """
        self.check(profile)

        args = build_cli_args(profile, wav_path, workspace.transcript_base)
        await self._runner.run(profile.binary_path, args, token=token)

        output = workspace.transcript_path
        try:
            text = await asyncio.to_thread(_read_text, output)
        except FileNotFoundError as exc:
            raise ProcessFailedError(
                profile.binary_path, 0, f"engine produced no output file at {output}"
            ) from exc

        transcript = text.strip()
        logger.info(
            "transcription_done",
            workspace_id=workspace.workspace_id,
            engine=profile.engine.value,
            chars=len(transcript),
        )
        return transcript
