"""Process tree termination.

The harness starts every command through a shell, so signalling only the
top-level pid can leave the real CLI (and anything it started) running.

- POSIX: commands run as session leaders, so the tree is the process group
  ``pgid == pid``. Descendants that moved to another group are found through
  ``psutil`` and signalled individually.
- Windows: there is no group signal that reaches grandchildren, so the tree
  is enumerated with ``psutil`` and each member is terminated.

Both strategies escalate from a graceful request to a forced kill, matching
``ManagedProcess.kill``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

import anyio
import psutil

from ..errors import CleanupError

__all__ = ["kill_tree", "is_alive", "IS_WINDOWS"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL
_POLL_INTERVAL = 0.05


def is_alive(proc: psutil.Process) -> bool:
    """Whether ``proc`` is still running.

    Zombies count as gone: they have exited and only wait for their parent
    to reap them.
    """
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def _group_members(pgid: int) -> list[psutil.Process]:
    members = []
    for proc in psutil.process_iter():
        try:
            if os.getpgid(proc.pid) == pgid:
                members.append(proc)
        except (ProcessLookupError, PermissionError, psutil.Error):
            continue
    return members


def _collect_tree(pid: int) -> list[psutil.Process]:
    """Return the root (if alive) and every known descendant of ``pid``."""
    targets: dict[int, psutil.Process] = {}

    try:
        root = psutil.Process(pid)
        # A reused pid that is not a group leader is not ours
        if IS_WINDOWS or os.getpgid(pid) == pid:
            targets[root.pid] = root
            for child in root.children(recursive=True):
                targets[child.pid] = child
    except (psutil.NoSuchProcess, ProcessLookupError):
        pass
    except psutil.Error as e:
        logger.debug(f"Cannot enumerate children of pid={pid}: {e}")

    if not IS_WINDOWS:
        # The shell may already be gone while its group lives on
        for member in _group_members(pid):
            targets.setdefault(member.pid, member)

    return [proc for proc in targets.values() if is_alive(proc)]


def _signal_group(pgid: int, sig: signal.Signals) -> None:
    try:
        os.killpg(pgid, sig)
        logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.debug(f"killpg({pgid}, {sig.name}) failed: {e}")


def _signal_each(procs: list[psutil.Process], *, force: bool) -> None:
    for proc in procs:
        try:
            if force:
                proc.kill()
            else:
                proc.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            logger.debug(f"Signalling pid={proc.pid} failed: {e}")


async def _wait_gone(procs: list[psutil.Process], timeout: float) -> list[psutil.Process]:
    """Poll until every process is gone or ``timeout`` elapses.

    Polling is used instead of ``psutil.wait_procs`` because waiting on our
    own child would reap it behind the event loop's child watcher.
    """
    alive = [proc for proc in procs if is_alive(proc)]
    with anyio.move_on_after(timeout):
        while alive:
            await asyncio.sleep(_POLL_INTERVAL)
            alive = [proc for proc in alive if is_alive(proc)]
    return alive


async def kill_tree(
    pid: int,
    *,
    term_timeout: float = DEFAULT_TERM_TIMEOUT,
    kill_timeout: float = DEFAULT_KILL_TIMEOUT,
) -> None:
    """Terminate ``pid`` and all of its descendants.

    Termination strategy:
    1. SIGTERM to the process group and to stragglers (terminate() on Windows)
    2. Wait up to term_timeout for graceful exit
    3. SIGKILL the survivors (kill() on Windows)
    4. Wait up to kill_timeout for forced exit

    A pid that no longer exists is a no-op.

    Args:
        pid: Root process id of the tree
        term_timeout: Seconds to wait after the graceful request
        kill_timeout: Seconds to wait after the forced kill

    Raises:
        CleanupError: If some member of the tree is still alive at the end
    """
    # Enumerating every process on the system is slow; keep it off the loop
    targets = await asyncio.to_thread(_collect_tree, pid)
    if not targets:
        logger.debug(f"No live processes in tree pid={pid}")
        return

    logger.debug(
        f"Terminating process tree pid={pid} "
        f"members={sorted(proc.pid for proc in targets)}"
    )

    # Step 1: Graceful termination
    if not IS_WINDOWS:
        _signal_group(pid, signal.SIGTERM)
    _signal_each(targets, force=False)

    # Step 2: Wait for graceful exit
    alive = await _wait_gone(targets, term_timeout)
    if not alive:
        logger.debug(f"Process tree terminated gracefully pid={pid}")
        return

    # Step 3: Force kill
    logger.debug(f"Force killing process tree pid={pid} survivors={[p.pid for p in alive]}")
    if not IS_WINDOWS:
        _signal_group(pid, signal.SIGKILL)
    _signal_each(alive, force=True)

    # Step 4: Wait for forced exit
    alive = await _wait_gone(alive, kill_timeout)
    if alive:
        logger.warning(f"Processes did not exit after kill pid={pid}: {[p.pid for p in alive]}")
        raise CleanupError(pid, f"{len(alive)} process(es) still alive after kill")
