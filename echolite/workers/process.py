"""External process runner — spawns transcoder and transcription executables.

Responsibilities:
- Spawn a named executable with arguments (no shell)
- Capture its diagnostic stream (stderr) fully before resolving
- Report failure to start and non-zero exit uniformly as ProcessFailedError
- Terminate the child when the request is cancelled (SIGTERM, then SIGKILL)

There is no retry: a failed process is reported upward unchanged.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from echolite.exceptions import ProcessFailedError, RequestCancelledError
from echolite.logging import get_logger

if TYPE_CHECKING:
    from echolite.gateway.cancel import CancellationToken

logger = get_logger("workers.process")

_TRUNCATION_MARKER = "[...truncated...]\n"


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Outcome of a successful run."""

    returncode: int
    diagnostics: str


def truncate_diagnostics(text: str, limit: int) -> str:
    """Keep the tail of ``text``; errors are usually reported last."""
    if len(text) <= limit:
        return text
    return _TRUNCATION_MARKER + text[-limit:]


class ProcessRunner:
    """Run external executables as asyncio subprocesses."""

    def __init__(self, diagnostics_limit: int = 8000, stop_grace_s: float = 2.0) -> None:
        self._diagnostics_limit = diagnostics_limit
        self._stop_grace_s = stop_grace_s

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        token: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run ``executable`` to completion.

        Args:
            executable: Program name (looked up on PATH) or path.
            args: Arguments, passed without shell interpretation.
            env: Extra environment variables, layered over the current environment.
            token: Cancellation token; cancelling it terminates the child.

        Returns:
            ProcessResult with exit code 0 and captured diagnostics.

        Raises:
            ProcessFailedError: If the executable could not start or exited non-zero.
            RequestCancelledError: If ``token`` was cancelled while running.
        """
        child_env = {**os.environ, **env} if env is not None else None

        logger.debug("process_start", executable=executable, args=list(args))

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                env=child_env,
            )
        except OSError as exc:
            logger.error("process_spawn_failed", executable=executable, error=str(exc))
            raise ProcessFailedError(executable, None, str(exc)) from exc

        try:
            if token is None:
                _stdout, stderr = await process.communicate()
            else:
                _stdout, stderr = await token.race(process.communicate())
        except (asyncio.CancelledError, RequestCancelledError):
            logger.info("process_cancelled", executable=executable, pid=process.pid)
            await self._stop(process, executable)
            raise

        diagnostics = truncate_diagnostics(
            (stderr or b"").decode("utf-8", errors="replace"),
            self._diagnostics_limit,
        )
        returncode = process.returncode if process.returncode is not None else -1

        if returncode != 0:
            logger.error(
                "process_failed",
                executable=executable,
                returncode=returncode,
                diagnostics_tail=diagnostics[-500:],
            )
            raise ProcessFailedError(executable, returncode, diagnostics)

        logger.debug("process_done", executable=executable)
        return ProcessResult(returncode=returncode, diagnostics=diagnostics)

    async def _stop(self, process: asyncio.subprocess.Process, executable: str) -> None:
        """Terminate gracefully (SIGTERM, wait, SIGKILL if needed)."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._stop_grace_s)
        except asyncio.TimeoutError:  # noqa: UP041
            logger.warning("process_force_kill", executable=executable, pid=process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()
