"""Scoped temp workspace: the filesystem artifacts owned by one request.

Each request gets an id built from a millisecond timestamp and a uuid4, so
ids never collide across concurrent requests and acquisition needs no shared
counter or lock. Every path planned for the id is deleted exactly once when
the workspace is released, whatever the outcome of the request.
"""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from echolite._audio_constants import NORMALIZED_SUFFIX
from echolite.logging import get_logger

if TYPE_CHECKING:
    from types import TracebackType

    from echolite._types import RequestKind

logger = get_logger("gateway.workspace")

# Suffix the local transcription engine appends to its output base path.
TRANSCRIPT_SUFFIX = ".txt"


def new_workspace_id() -> str:
    """Return ``<unix-ms>-<uuid4 hex>``."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}"


class Workspace:
    """Planned temp paths for one request.

    Paths are only planned here; stages create the files. ``release()``
    deletes whichever of them exist and is a no-op the second time.
    """

    def __init__(self, root: Path, workspace_id: str, kind: RequestKind) -> None:
        self.root = root
        self.workspace_id = workspace_id
        self.kind = kind
        self.raw_path = root / f"{workspace_id}-in"
        self.wav_path = root / f"{workspace_id}{NORMALIZED_SUFFIX}"
        self.transcript_base = root / f"{workspace_id}-transcript"
        self._released = False

    @property
    def transcript_path(self) -> Path:
        """File the transcription engine writes for ``transcript_base``."""
        return self.transcript_base.with_name(self.transcript_base.name + TRANSCRIPT_SUFFIX)

    @property
    def planned_paths(self) -> tuple[Path, ...]:
        return (self.raw_path, self.wav_path, self.transcript_path)

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> list[Path]:
        """Delete every planned path that exists.

        Individual failures are logged and swallowed; cleanup never masks the
        request's own result.

        Returns:
            Paths actually deleted.
        """
        if self._released:
            return []
        self._released = True

        deleted: list[Path] = []
        for path in self.planned_paths:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(
                    "workspace_cleanup_failed",
                    workspace_id=self.workspace_id,
                    path=str(path),
                    error=str(exc),
                )
                continue
            deleted.append(path)

        logger.debug(
            "workspace_released",
            workspace_id=self.workspace_id,
            kind=self.kind.value,
            deleted=len(deleted),
        )
        return deleted

    async def __aenter__(self) -> Workspace:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class WorkspaceFactory:
    """Allocates workspaces under one process-wide temp root."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root_ready = False

    @property
    def root(self) -> Path:
        return self._root

    def acquire(self, kind: RequestKind) -> Workspace:
        """Plan a fresh workspace for a request of ``kind``."""
        if not self._root_ready:
            self._root.mkdir(parents=True, exist_ok=True)
            self._root_ready = True
        workspace = Workspace(self._root, new_workspace_id(), kind)
        logger.debug(
            "workspace_acquired",
            workspace_id=workspace.workspace_id,
            kind=kind.value,
        )
        return workspace
