"""Harness exception classes.

e2e-harness errors v0.1.0
"""

from __future__ import annotations

import json
from pathlib import Path

__all__ = [
    "HarnessError",
    "CommandUsageError",
    "SpawnError",
    "HarnessTimeoutError",
    "StreamClosedError",
    "NonZeroExitError",
    "CleanupError",
]


class HarnessError(Exception):
    """Base class for harness errors."""
    pass


class CommandUsageError(HarnessError, ValueError):
    """Command string does not start with the expected CLI prefix."""
    pass


class SpawnError(HarnessError):
    """The command could not be started.

    Attributes:
        command: Command string that was being spawned
        cwd: Working directory requested for the process
    """

    def __init__(self, command: str, cwd: Path, reason: str) -> None:
        self.command = command
        self.cwd = cwd
        super().__init__(f"Failed to start {json.dumps(command)} in {cwd}: {reason}")


class HarnessTimeoutError(HarnessError, TimeoutError):
    """A wait or a bounded run exceeded its deadline.

    Attributes:
        output: Everything the process printed before the deadline
        timeout: The deadline in seconds
        pattern: Pattern being waited for (None for bounded runs)
    """

    def __init__(
        self,
        message: str,
        output: str,
        timeout: float,
        pattern: str | None = None,
    ) -> None:
        self.output = output
        self.timeout = timeout
        self.pattern = pattern
        super().__init__(f"{message}\nCommand output:\n{output}")


class StreamClosedError(HarnessError):
    """The process exited before a pending wait matched.

    Attributes:
        output: The complete output of the process
        pattern: Pattern that never matched
    """

    def __init__(self, pattern: str, output: str) -> None:
        self.pattern = pattern
        self.output = output
        super().__init__(
            f"Process output closed before matching /{pattern}/\n"
            f"Command output:\n{output}"
        )


class NonZeroExitError(HarnessError):
    """The process exited with a non-zero code.

    Attributes:
        command: The original command string
        returncode: Exit code of the process
        output: The complete output of the process
    """

    def __init__(self, command: str, returncode: int, output: str) -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(f"Failed to run {json.dumps(command)}:\n{output}")


class CleanupError(HarnessError):
    """A process tree could not be terminated.

    Attributes:
        pid: Root process id of the tree
    """

    def __init__(self, pid: int, reason: str) -> None:
        self.pid = pid
        super().__init__(f"Failed to kill process tree pid={pid}: {reason}")
