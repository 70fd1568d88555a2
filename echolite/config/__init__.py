"""Backend profiles and runtime settings."""
