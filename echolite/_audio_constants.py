"""Normalized audio format shared by every audio-consuming backend.

Single source of truth for the transcoder output: every downstream consumer
(local transcription engine, audio-capable chat backend) expects exactly this.
"""

from __future__ import annotations

# 16 kHz mono is what Whisper-family engines and omni chat models expect.
NORMALIZED_SAMPLE_RATE: int = 16000
NORMALIZED_CHANNELS: int = 1

# Uncompressed 16-bit PCM inside a RIFF/WAV container.
NORMALIZED_CODEC: str = "pcm_s16le"
NORMALIZED_SUFFIX: str = ".wav"
NORMALIZED_AUDIO_FORMAT: str = "wav"
