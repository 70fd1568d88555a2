"""Shared test helpers: fake process runner and fake chat backends.

Usage:
    from tests.helpers import (
        FakeRunner,
        chunked,
        mock_http_client,
        ndjson_body,
        sse_body,
    )
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path

import httpx

from echolite.exceptions import ProcessFailedError
from echolite.workers.process import ProcessResult

# Bytes the fake transcoder writes as "normalized" output.
FAKE_NORMALIZED_WAV = b"RIFF\x24\x00\x00\x00WAVEfmt normalized"


class FakeRunner:
    """Stands in for ProcessRunner without spawning anything.

    Simulates both executables the gateway drives: calls carrying ``-of``
    behave like the transcription engine (write ``<base>.txt``), every other
    call behaves like the transcoder (write the last argument).
    """

    def __init__(
        self,
        *,
        transcript: str = "  Alice: we ship on Friday.\n",
        fail_executable: str | None = None,
        diagnostics: str = "Invalid data found when processing input",
        write_transcript: bool = True,
    ) -> None:
        self.transcript = transcript
        self.fail_executable = fail_executable
        self.diagnostics = diagnostics
        self.write_transcript = write_transcript
        self.calls: list[tuple[str, list[str]]] = []

    @property
    def executables(self) -> list[str]:
        return [exe for exe, _ in self.calls]

    async def run(
        self,
        executable: str,
        args: Sequence[str],
        *,
        env: object = None,
        token: object = None,
    ) -> ProcessResult:
        args = list(args)
        self.calls.append((executable, args))
        if executable == self.fail_executable:
            raise ProcessFailedError(executable, 1, self.diagnostics)
        if "-of" in args:
            if self.write_transcript:
                base = args[args.index("-of") + 1]
                Path(base + ".txt").write_text(self.transcript, encoding="utf-8")
        else:
            Path(args[-1]).write_bytes(FAKE_NORMALIZED_WAV)
        return ProcessResult(returncode=0, diagnostics="")


def sse_body(texts: Sequence[str], *, done: bool = True) -> bytes:
    """OpenAI-style SSE body with one delta event per text."""
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": t}}]}) + "\n\n" for t in texts
    ]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def ndjson_body(texts: Sequence[str], *, done: bool = True) -> bytes:
    """Ollama-style NDJSON body with one line per text."""
    lines = [
        json.dumps({"message": {"role": "assistant", "content": t}, "done": False}) + "\n"
        for t in texts
    ]
    if done:
        lines.append(json.dumps({"message": {"role": "assistant", "content": ""}, "done": True}))
        lines.append("\n")
    return "".join(lines).encode("utf-8")


def split_every(data: bytes, size: int) -> list[bytes]:
    """Split ``data`` into chunks of ``size`` bytes (last one may be shorter)."""
    return [data[i : i + size] for i in range(0, len(data), size)]


async def chunked(chunks: Sequence[bytes]) -> AsyncIterator[bytes]:
    """Async body that yields ``chunks`` one network read at a time."""
    for chunk in chunks:
        yield chunk


Handler = Callable[[httpx.Request], httpx.Response]


def mock_http_client(handler: Handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def streaming_response(
    body: bytes, *, chunk_size: int = 7, status_code: int = 200
) -> httpx.Response:
    """Response whose body arrives in small chunks."""
    return httpx.Response(status_code, content=chunked(split_every(body, chunk_size)))


class RecordingBackend:
    """MockTransport handler that records requests and replays one body."""

    def __init__(
        self,
        body: bytes = b"",
        *,
        status_code: int = 200,
        chunk_size: int = 7,
    ) -> None:
        self.body = body
        self.status_code = status_code
        self.chunk_size = chunk_size
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, content=self.body)
        return streaming_response(self.body, chunk_size=self.chunk_size)

    @property
    def last_json(self) -> dict[str, object]:
        return json.loads(self.requests[-1].content)  # type: ignore[no-any-return]
