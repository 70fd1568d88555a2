"""Audio normalization before transcription or upload."""
