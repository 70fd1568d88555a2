"""Audio normalizer — transcodes any upload into the normalized waveform.

Every audio-consuming backend depends on the normalized format: 16 kHz,
mono, 16-bit PCM WAV. The conversion is delegated to ffmpeg through the
process runner; transcoder failures propagate unchanged.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from echolite._audio_constants import NORMALIZED_CHANNELS, NORMALIZED_CODEC, NORMALIZED_SAMPLE_RATE
from echolite.exceptions import InvalidRequestError
from echolite.logging import get_logger

if TYPE_CHECKING:
    from echolite.gateway.cancel import CancellationToken
    from echolite.gateway.workspace import Workspace
    from echolite.workers.process import ProcessRunner

logger = get_logger("preprocessing.normalize")


def build_ffmpeg_args(input_path: Path, output_path: Path) -> list[str]:
    """Arguments that downmix to mono and resample to the normalized rate."""
    return [
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i",
        str(input_path),
        "-vn",
        "-ac",
        str(NORMALIZED_CHANNELS),
        "-ar",
        str(NORMALIZED_SAMPLE_RATE),
        "-c:a",
        NORMALIZED_CODEC,
        str(output_path),
    ]


def _write_bytes(path: Path, data: bytes) -> None:
    """Write file contents (blocking). Run via asyncio.to_thread."""
    path.write_bytes(data)


class AudioNormalizer:
    """Turns raw uploaded bytes into the workspace's normalized WAV."""

    def __init__(self, runner: ProcessRunner, ffmpeg_path: str = "ffmpeg") -> None:
        self._runner = runner
        self._ffmpeg_path = ffmpeg_path

    async def normalize(
        self,
        raw_bytes: bytes,
        workspace: Workspace,
        token: CancellationToken | None = None,
    ) -> Path:
        """Write ``raw_bytes`` to the workspace and transcode them.

        Returns:
            Path of the normalized waveform (``workspace.wav_path``).

        Raises:
            InvalidRequestError: If ``raw_bytes`` is empty.
            ProcessFailedError: If ffmpeg cannot decode the input.
        """
        if not raw_bytes:
            raise InvalidRequestError("Uploaded audio is empty")

        await asyncio.to_thread(_write_bytes, workspace.raw_path, raw_bytes)
        await self._runner.run(
            self._ffmpeg_path,
            build_ffmpeg_args(workspace.raw_path, workspace.wav_path),
            token=token,
        )

        logger.info(
            "audio_normalized",
            workspace_id=workspace.workspace_id,
            input_bytes=len(raw_bytes),
            sample_rate=NORMALIZED_SAMPLE_RATE,
        )
        return workspace.wav_path
