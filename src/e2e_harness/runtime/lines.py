"""Incremental byte-stream to line splitting."""

from __future__ import annotations

import codecs
import re

__all__ = ["LineSplitter"]

_NEWLINE = re.compile(r"\r\n|\r|\n")


class LineSplitter:
    """Split a chunked byte stream into text lines.

    Lines end at ``\\n``, ``\\r\\n`` or a lone ``\\r``. Bytes are decoded
    incrementally, so a multi-byte character split across two chunks is
    decoded intact. A ``\\r`` at the very end of a chunk is held back until
    the next chunk shows whether it is the first half of ``\\r\\n``.

    Example:
        splitter = LineSplitter()
        splitter.feed(b"one\\ntw")   # ["one"]
        splitter.feed(b"o\\n")       # ["two"]
        splitter.flush()            # []
    """

    def __init__(self, encoding: str = "utf-8", errors: str = "replace") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
        # Pieces of the unfinished line, joined only once it completes
        self._parts: list[str] = []
        self._pending_cr = False

    def feed(self, data: bytes) -> list[str]:
        """Consume a chunk and return every line it completed."""
        return self._split(self._decoder.decode(data))

    def flush(self) -> list[str]:
        """Return the lines still buffered at end of stream.

        An unterminated final line is emitted as-is.
        """
        lines = self._split(self._decoder.decode(b"", final=True))
        if self._pending_cr or self._parts:
            lines.append("".join(self._parts))
        self._parts = []
        self._pending_cr = False
        return lines

    def _split(self, text: str) -> list[str]:
        lines: list[str] = []
        if not text:
            return lines

        if self._pending_cr:
            lines.append("".join(self._parts))
            self._parts = []
            self._pending_cr = False
            if text[0] == "\n":
                text = text[1:]

        # Only the new text is scanned; earlier parts hold no line breaks
        start = 0
        for match in _NEWLINE.finditer(text):
            self._parts.append(text[start:match.start()])
            start = match.end()
            if match.group() == "\r" and start == len(text):
                self._pending_cr = True
                break
            lines.append("".join(self._parts))
            self._parts = []
        if start < len(text):
            self._parts.append(text[start:])
        return lines
