"""Managed long-running processes with merged, line-buffered output.

e2e-harness runtime module v0.1.0

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- A single merged stdout/stderr pipe split into lines and recorded in an OutputLog
- A cached exit notification that every caller can await
- Reliable termination of the whole process tree

Key design points:
- Commands run through the platform shell, as CLI command strings do
- POSIX: start_new_session=True so the shell and its children share one group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Output is pumped by a background task whether or not anyone is waiting
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import SpawnError
from .lines import LineSplitter
from .output_log import OutputLog
from .tree_kill import (
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_TERM_TIMEOUT,
    IS_WINDOWS,
    kill_tree,
)

__all__ = [
    "CommandSpec",
    "ManagedProcess",
]

logger = logging.getLogger(__name__)

DEFAULT_DEBUG_ENV_VAR = "WRANGLER_LOG"
DEFAULT_DRAIN_TIMEOUT = 1.0  # seconds to wait for EOF after the shell exits
_READ_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class CommandSpec:
    """Specification for a command to supervise.

    Attributes:
        command: Shell command line
        cwd: Working directory for the process
        env: Variables overlaid on the inherited environment (None = inherit)
        debug: Raise the command's own log level through its debug variable
    """

    command: str
    cwd: Path
    env: Mapping[str, str] | None = None
    debug: bool = False


class ManagedProcess:
    """One supervised command and everything it printed.

    Use ``ManagedProcess.spawn()`` to create instances. From then on two
    background tasks run:
    - the output pump reads the merged pipe into ``log`` line by line
    - the exit watcher waits for the exit code, lets the pump drain, then
      closes ``log``

    Example:
        spec = CommandSpec(command="wrangler dev", cwd=Path("/workspace"))
        process = await ManagedProcess.spawn(spec)
        try:
            ...
        finally:
            await process.kill()
    """

    def __init__(
        self,
        spec: CommandSpec,
        process: asyncio.subprocess.Process,
        *,
        echo_output: bool = False,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ) -> None:
        self.spec = spec
        self.log = OutputLog()
        self.echo_output = echo_output
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout
        self.drain_timeout = drain_timeout
        self._process = process
        self._splitter = LineSplitter()
        self._pump_task = asyncio.create_task(self._pump_output())
        self._exit_task = asyncio.create_task(self._watch_exit())

    @classmethod
    async def spawn(
        cls,
        spec: CommandSpec,
        *,
        debug_env_var: str = DEFAULT_DEBUG_ENV_VAR,
        echo_output: bool = False,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ) -> ManagedProcess:
        """Start the command and begin recording its output.

        Args:
            spec: Command specification
            debug_env_var: Variable set to "debug" in the child when spec.debug
            echo_output: Log every output line at INFO level
            term_timeout: Seconds to wait after the graceful termination request
            kill_timeout: Seconds to wait after the forced kill
            drain_timeout: Seconds to wait for EOF once the shell has exited

        Raises:
            SpawnError: If the working directory is unusable or the shell
                cannot be started
        """
        if not spec.cwd.is_dir():
            raise SpawnError(spec.command, spec.cwd, "working directory does not exist")

        kwargs = _build_subprocess_kwargs(spec, debug_env_var)

        try:
            # stdin=DEVNULL so the child never inherits the caller's stdin
            process = await asyncio.create_subprocess_shell(
                spec.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=spec.cwd,
                **kwargs,
            )
        except OSError as e:
            raise SpawnError(spec.command, spec.cwd, str(e)) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"command={spec.command!r} cwd={spec.cwd}"
        )

        return cls(
            spec,
            process,
            echo_output=echo_output,
            term_timeout=term_timeout,
            kill_timeout=kill_timeout,
            drain_timeout=drain_timeout,
        )

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        """Exit code once the process has exited and its output is closed."""
        if self._exit_task.done() and not self._exit_task.cancelled():
            return self._exit_task.result()
        return None

    @property
    def is_running(self) -> bool:
        return not self._exit_task.done()

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code.

        The result is cached; later calls return it immediately. Cancelling
        the caller does not cancel the exit watcher.
        """
        return await asyncio.shield(self._exit_task)

    async def kill(self) -> None:
        """Terminate the process tree and wait for the exit.

        A no-op once the process has exited.

        Raises:
            CleanupError: If part of the tree survived the forced kill
        """
        if not self.is_running:
            return
        await kill_tree(
            self.pid,
            term_timeout=self.term_timeout,
            kill_timeout=self.kill_timeout,
        )
        await self.wait()

    async def _pump_output(self) -> None:
        """Read the merged pipe and append complete lines to the log."""
        stream = self._process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_SIZE)
            if not chunk:
                break
            for line in self._splitter.feed(chunk):
                self._record(line)

    async def _watch_exit(self) -> int:
        returncode = await self._process.wait()

        # A descendant may still hold the pipe open after the shell exited
        try:
            await asyncio.wait_for(asyncio.shield(self._pump_task), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Output still open after exit pid={self.pid}, closing")
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
        except Exception as e:
            logger.warning(f"Error reading output pid={self.pid}: {e}")

        for line in self._splitter.flush():
            self._record(line)
        self.log.close()

        logger.debug(
            f"Subprocess completed pid={self.pid} "
            f"returncode={returncode} lines={len(self.log)}"
        )
        return returncode

    def _record(self, line: str) -> None:
        if self.echo_output:
            logger.info(f"[{self.pid}] {line}")
        self.log.append(line)

    def __repr__(self) -> str:
        status = "running" if self.is_running else f"exited({self.returncode})"
        return f"ManagedProcess(pid={self.pid}, status={status}, command={self.spec.command!r})"


def _build_subprocess_kwargs(spec: CommandSpec, debug_env_var: str) -> dict[str, Any]:
    """Build platform-specific subprocess kwargs.

    Args:
        spec: Command specification
        debug_env_var: Variable that raises the command's log level

    Returns:
        Dict of kwargs for asyncio.create_subprocess_shell
    """
    kwargs: dict[str, Any] = {}

    # Environment
    if spec.env is not None or spec.debug:
        env = dict(os.environ)
        if spec.env is not None:
            env.update(spec.env)
        if spec.debug:
            env[debug_env_var] = "debug"
        kwargs["env"] = env

    # Platform-specific isolation
    if IS_WINDOWS:
        # Windows: CREATE_NEW_PROCESS_GROUP
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        # POSIX: start_new_session (equivalent to setsid)
        kwargs["start_new_session"] = True

    return kwargs
