"""Caller-facing handle over a managed process."""

from __future__ import annotations

import logging
import re

from .errors import NonZeroExitError
from .runtime.process_runner import ManagedProcess
from .waiter import DEFAULT_READ_TIMEOUT, PatternWaiter

__all__ = ["ProcessHarness"]

logger = logging.getLogger(__name__)


class ProcessHarness:
    """Handle for one running command.

    A harness is used in one of two modes:
    - long-lived (a dev server, a tail): ``attach_and_wait()`` /
      ``read_until()`` for interesting lines, ``kill()`` or the cleanup
      registry to stop it
    - one-shot: ``run_to_completion()`` waits for the exit and checks the code

    ``output`` is a snapshot of everything printed so far and may be read at
    any time, including after the process exited.

    Example:
        harness = await run_long_lived("wrangler dev", cleanup=registry)
        groups = await harness.attach_and_wait(r"Ready on (?P<url>https?://.*)")
        print(groups["url"])
    """

    def __init__(
        self,
        process: ManagedProcess,
        *,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        display_command: str | None = None,
    ) -> None:
        """Initialize the harness.

        Args:
            process: The process this harness owns
            read_timeout: Default timeout for pattern waits
            display_command: Command as the caller wrote it (used in errors);
                defaults to the command that was actually spawned
        """
        self.process = process
        self.command = display_command or process.spec.command
        self._waiter = PatternWaiter(process.log, default_timeout=read_timeout)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def output(self) -> str:
        """Everything printed so far, newline-joined."""
        return self.process.log.snapshot()

    async def read_until(
        self,
        pattern: str | re.Pattern[str],
        timeout: float | None = None,
    ) -> re.Match[str]:
        """Wait for the next output line matching ``pattern``.

        See ``PatternWaiter.wait_for``.
        """
        return await self._waiter.wait_for(pattern, timeout)

    async def attach_and_wait(
        self,
        pattern: str | re.Pattern[str],
        timeout: float | None = None,
    ) -> dict[str, str]:
        """Wait for the next matching line and return its named groups."""
        match = await self.read_until(pattern, timeout)
        return match.groupdict()

    async def final_output(self) -> str:
        """Wait for the process to exit and return its complete output."""
        await self.process.wait()
        return self.output

    async def run_to_completion(self) -> str:
        """Wait for the process to exit and require success.

        Returns:
            The complete output

        Raises:
            NonZeroExitError: If the exit code is not zero
        """
        returncode = await self.process.wait()
        if returncode != 0:
            logger.debug(f"Command failed command={self.command!r} returncode={returncode}")
            raise NonZeroExitError(self.command, returncode, self.output)
        return self.output

    async def wait(self) -> int:
        return await self.process.wait()

    async def kill(self) -> None:
        """Terminate the process tree; a no-op once the process exited."""
        await self.process.kill()

    def __repr__(self) -> str:
        return f"ProcessHarness(pid={self.pid}, command={self.command!r})"
