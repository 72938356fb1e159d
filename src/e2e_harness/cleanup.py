"""Teardown-time tracking of spawned processes.

A CleanupRegistry collects every process started during one scope (usually
one test) and terminates each whole process tree when the scope ends,
whether or not the test stopped the process itself.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Optional

from .runtime.process_runner import ManagedProcess
from .runtime.tree_kill import DEFAULT_KILL_TIMEOUT, DEFAULT_TERM_TIMEOUT, kill_tree

__all__ = ["CleanupRegistry", "TrackedProcess"]

logger = logging.getLogger(__name__)


@dataclass
class TrackedProcess:
    """A registry entry.

    Attributes:
        pid: Root process id of the tree to terminate
        command: Command string, for log messages
        ref: Weak reference to the ManagedProcess; the registry never owns it
    """

    pid: int
    command: str
    ref: weakref.ref[ManagedProcess]

    @property
    def process(self) -> Optional[ManagedProcess]:
        return self.ref()

    def __repr__(self) -> str:
        process = self.process
        if process is None:
            status = "released"
        else:
            status = "running" if process.is_running else "exited"
        return f"TrackedProcess(pid={self.pid}, status={status}, command={self.command!r})"


class CleanupRegistry:
    """Processes to terminate at the end of a scope.

    Only the pid and a weak reference are kept, so a harness the caller has
    dropped is still terminated by pid. The registry never reads output.

    All operations are synchronous except ``teardown_all()`` and must be
    called from the event loop that owns the processes.

    Example:
        registry = CleanupRegistry()
        try:
            harness = await run_long_lived("wrangler dev", cleanup=registry)
            ...
        finally:
            await registry.teardown_all()
    """

    def __init__(
        self,
        *,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout
        self._entries: dict[int, TrackedProcess] = {}

    def register(self, process: ManagedProcess) -> None:
        """Track ``process``. Registering it again has no effect.

        A different process holding a tracked pid (the pid was reused)
        replaces the stale entry.
        """
        current = self._entries.get(process.pid)
        if current is not None:
            if current.process is process:
                return
            logger.debug(f"Replacing stale entry for reused pid: {current}")
        entry = TrackedProcess(
            pid=process.pid,
            command=process.spec.command,
            ref=weakref.ref(process),
        )
        self._entries[process.pid] = entry
        logger.debug(f"Registered process: {entry}")

    def unregister(self, process: ManagedProcess) -> bool:
        """Stop tracking ``process``.

        Returns:
            Whether the process was tracked
        """
        entry = self._entries.get(process.pid)
        if entry is None or entry.process is not process:
            return False
        del self._entries[process.pid]
        logger.debug(f"Unregistered process: {entry}")
        return True

    @property
    def pids(self) -> list[int]:
        return list(self._entries)

    async def teardown_all(self) -> None:
        """Terminate every tracked process tree and empty the registry.

        Trees are terminated concurrently. A failure is logged and does not
        stop the others; nothing is raised.
        """
        entries = list(self._entries.values())
        self._entries.clear()
        if not entries:
            return

        logger.debug(f"Tearing down {len(entries)} process(es)")
        results = await asyncio.gather(
            *(self._terminate(entry) for entry in entries),
            return_exceptions=True,
        )
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to kill process pid={entry.pid} command={entry.command!r}: {result}")

    async def _terminate(self, entry: TrackedProcess) -> None:
        await kill_tree(
            entry.pid,
            term_timeout=self.term_timeout,
            kill_timeout=self.kill_timeout,
        )
        process = entry.process
        if process is not None:
            # Let the exit watcher close the output before teardown returns
            await process.wait()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pid: int) -> bool:
        return pid in self._entries
