"""Shared fixtures for all tests."""

from __future__ import annotations

import io
import sys
import wave
from pathlib import Path

# Ensure repo root is on sys.path so tests can import the `echolite` package
# when running pytest from the repository root without an editable install.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from echolite.config.store import InMemorySettingsStore  # noqa: E402
from echolite.gateway.workspace import WorkspaceFactory  # noqa: E402
from tests.helpers import FakeRunner  # noqa: E402


def make_wav_bytes(duration_s: float = 0.1, sample_rate: int = 16000) -> bytes:
    """Silent PCM 16-bit mono WAV."""
    n_frames = int(duration_s * sample_rate)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(b"\x00\x00" * n_frames)
    return buf.getvalue()


@pytest.fixture
def wav_bytes() -> bytes:
    """100 ms of silence at 16 kHz."""
    return make_wav_bytes()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Per-test temp root for request workspaces."""
    return tmp_path / "workspaces"


@pytest.fixture
def workspaces(workspace_root: Path) -> WorkspaceFactory:
    return WorkspaceFactory(workspace_root)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    """Profiles pointing at fake hosts with a configured transcription model."""
    return InMemorySettingsStore(
        {
            "askAudio": {"baseURL": "http://omni.test", "model": "omni"},
            "transcribe": {"modelPath": "/models/ggml-base.bin", "threads": 2},
            "askText": {"baseURL": "http://ollama.test", "model": "qwen3:8b"},
        }
    )
