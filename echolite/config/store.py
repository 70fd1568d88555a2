"""Settings provider. Loads, merges, and persists the profile document.

The provider is passed explicitly into ``create_app()`` and the ``Gateway``;
there is no module-level instance, so tests can swap in
``InMemorySettingsStore``.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from echolite.config.profiles import (
    DEFAULT_CONFIG,
    ModelsConfig,
    clamp_candidate,
    merge_config,
    merge_with_defaults,
)
from echolite.logging import get_logger

logger = get_logger("config.store")


class SettingsProvider(Protocol):
    """Key-value provider for the three backend profiles."""

    @property
    def location(self) -> str: ...

    def load(self) -> ModelsConfig: ...

    def save(self, candidate: Mapping[str, Any]) -> ModelsConfig: ...


def prepare_candidate(candidate: Mapping[str, Any], previous: ModelsConfig) -> ModelsConfig:
    """Clamp numeric ranges, then merge ``candidate`` into ``previous``.

    Sections and fields the candidate does not name keep their stored values.

    Raises:
        ConfigValidationError: If a non-temperature field has an invalid value.
    """
    return merge_config(previous, clamp_candidate(candidate, previous), strict=True)


class JsonSettingsStore:
    """Profile document stored as one JSON file.

    An absent or unreadable document is not an error: the defaults are
    written back on first load (idempotent bootstrap).
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def location(self) -> str:
        return str(self._path)

    def load(self) -> ModelsConfig:
        """Return the persisted profiles merged over the defaults."""
        raw = self._read()
        if raw is None:
            self._write(DEFAULT_CONFIG)
            logger.info("config_bootstrapped", path=self.location)
            return DEFAULT_CONFIG
        return merge_with_defaults(raw)

    def save(self, candidate: Mapping[str, Any]) -> ModelsConfig:
        """Validate, clamp, merge into the stored profiles, and persist ``candidate``.

        Returns:
            The configuration actually written.

        Raises:
            ConfigValidationError: If the candidate has invalid field values.
        """
        config = prepare_candidate(candidate, self.load())
        self._write(config)
        logger.info("config_saved", path=self.location)
        return config

    def _read(self) -> dict[str, Any] | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("config_unreadable", path=self.location, error=str(exc))
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("config_corrupt", path=self.location, error=str(exc))
            return None
        if not isinstance(data, dict):
            logger.warning("config_corrupt", path=self.location, error="not a JSON object")
            return None
        return data

    def _write(self, config: ModelsConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(config.to_document(), indent=2)
        # Write-then-rename so concurrent readers never see a partial file.
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class InMemorySettingsStore:
    """Process-local provider, for tests and embedding."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._config = merge_with_defaults(initial or {})

    @property
    def location(self) -> str:
        return "memory"

    def load(self) -> ModelsConfig:
        return self._config

    def save(self, candidate: Mapping[str, Any]) -> ModelsConfig:
        self._config = prepare_candidate(candidate, self._config)
        return self._config
