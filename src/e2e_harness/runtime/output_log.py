"""Append-only record of the lines one process printed."""

from __future__ import annotations

import asyncio
import logging

__all__ = ["OutputLog"]

logger = logging.getLogger(__name__)


class OutputLog:
    """Ordered, append-only list of output lines with live subscribers.

    The owning process's output pump is the only writer. Readers either take
    a snapshot (``lines`` / ``snapshot()``) or subscribe to lines appended
    from now on. Each subscriber gets its own unbounded queue that is filled
    with ``put_nowait``, so ``append()`` never suspends the writer. ``None`` is
    queued once the log closes.

    Retention is unbounded for the lifetime of the process. A cap with an
    eviction policy would go in ``append()``; nothing is ever dropped today.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._subscribers: list[asyncio.Queue[str | None]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the process has exited and no more lines will arrive."""
        return self._closed

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    def snapshot(self) -> str:
        """Return every line so far, newline-joined."""
        return "\n".join(self._lines)

    def append(self, line: str) -> None:
        if self._closed:
            raise RuntimeError("Cannot append to a closed OutputLog")
        self._lines.append(line)
        for queue in self._subscribers:
            queue.put_nowait(line)

    def close(self) -> None:
        """Mark the end of output and release every subscriber.

        Idempotent.
        """
        if self._closed:
            return
        self._closed = True
        for queue in self._subscribers:
            queue.put_nowait(None)
        logger.debug(
            f"Output closed lines={len(self._lines)} "
            f"subscribers={len(self._subscribers)}"
        )

    def subscribe(self) -> asyncio.Queue[str | None]:
        """Return a queue receiving every line appended after this call.

        If the log is already closed the queue holds only the ``None`` marker.
        """
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        if self._closed:
            queue.put_nowait(None)
        else:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[str | None]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def __len__(self) -> int:
        return len(self._lines)
