"""Abstract interface for backend stream parsers."""

from __future__ import annotations

import codecs
from abc import ABC, abstractmethod

from echolite._types import StreamFragment, StreamProtocol


class FragmentParser(ABC):
    """Contract for chat stream parsers.

    Parsers accept raw body chunks exactly as they arrive from the network
    and produce text fragments. They keep a decode buffer: chunks are split
    on newlines, every complete line is a candidate event, and a trailing
    partial line is retained until the next chunk. A parser is single-use;
    once it has produced a final fragment it ignores further input.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._done = False

    @property
    @abstractmethod
    def protocol(self) -> StreamProtocol:
        """Wire protocol this parser understands."""
        pass

    @property
    def done(self) -> bool:
        """True once the completion marker has been seen."""
        return self._done

    def feed(self, chunk: bytes) -> list[StreamFragment]:
        """Consume one network chunk.

        Returns:
            Fragments completed by this chunk, in order. If the last one is
            final, lines still buffered after it are discarded.
        """
        if self._done:
            return []
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._consume(lines)

    def finish(self) -> list[StreamFragment]:
        """Flush at end of body: the retained partial line is a last candidate."""
        if self._done:
            return []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not tail.strip():
            return []
        return self._consume([tail])

    def _consume(self, lines: list[str]) -> list[StreamFragment]:
        fragments: list[StreamFragment] = []
        for line in lines:
            fragment = self.parse_line(line.strip())
            if fragment is None:
                continue
            fragments.append(fragment)
            if fragment.final:
                self._done = True
                self._buffer = ""
                break
        return fragments

    @abstractmethod
    def parse_line(self, line: str) -> StreamFragment | None:
        """Turn one complete, stripped line into a fragment.

        Returns:
            A fragment, or None if the line carries no text and does not
            end the stream.

        Raises:
            MalformedBackendPayloadError: If the backend reports an error
                inside the stream.
        """
        pass
