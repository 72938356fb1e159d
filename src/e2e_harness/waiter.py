"""Wait for a line of process output matching a pattern."""

from __future__ import annotations

import asyncio
import logging
import re

import anyio

from .errors import HarnessTimeoutError, StreamClosedError
from .runtime.output_log import OutputLog

__all__ = ["PatternWaiter", "DEFAULT_READ_TIMEOUT"]

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 10.0  # seconds


class PatternWaiter:
    """Resolve the first new line of an OutputLog that matches a pattern.

    Only lines appended after ``wait_for()`` is called are considered, so
    sequential waits against one process never re-match a line an earlier
    wait already passed. The error raised on failure always carries the
    whole output so far, not just the lines seen by this wait.

    There are no retries; a failed wait is final for that call.
    """

    def __init__(self, log: OutputLog, default_timeout: float = DEFAULT_READ_TIMEOUT) -> None:
        self._log = log
        self.default_timeout = default_timeout

    async def wait_for(
        self,
        pattern: str | re.Pattern[str],
        timeout: float | None = None,
    ) -> re.Match[str]:
        """Wait for a matching line.

        Args:
            pattern: Case-sensitive regex, searched in each complete line
            timeout: Seconds to wait (default_timeout when None)

        Returns:
            The match; named groups are available through groupdict()

        Raises:
            HarnessTimeoutError: If no line matched before the deadline
            StreamClosedError: If the process exited before a line matched
        """
        regexp = re.compile(pattern) if isinstance(pattern, str) else pattern
        if timeout is None:
            timeout = self.default_timeout

        # Subscribe before the first suspension point so no line slips by
        queue = self._log.subscribe()
        try:
            with anyio.fail_after(timeout):
                return await self._next_match(queue, regexp)
        except TimeoutError:
            logger.debug(f"Timed out after {timeout}s waiting for /{regexp.pattern}/")
            raise HarnessTimeoutError(
                f"Timed out after {timeout}s waiting for /{regexp.pattern}/",
                output=self._log.snapshot(),
                timeout=timeout,
                pattern=regexp.pattern,
            ) from None
        finally:
            self._log.unsubscribe(queue)

    async def _next_match(
        self,
        queue: asyncio.Queue[str | None],
        regexp: re.Pattern[str],
    ) -> re.Match[str]:
        while True:
            line = await queue.get()
            if line is None:
                raise StreamClosedError(regexp.pattern, self._log.snapshot())
            match = regexp.search(line)
            if match is not None:
                return match
