"""Run CLI commands under the harness.

Commands are written the way a user types them (``"wrangler dev"``); the
prefix is replaced with the configured CLI before spawning.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import anyio

from .cleanup import CleanupRegistry
from .config import HarnessConfig, get_config
from .errors import CommandUsageError, HarnessTimeoutError
from .harness import ProcessHarness
from .runtime.process_runner import CommandSpec, ManagedProcess

__all__ = [
    "build_command",
    "run_long_lived",
    "run",
    "wait_for_ready",
    "wait_for_reload",
]

logger = logging.getLogger(__name__)

READY_PATTERN = r"Ready on (?P<url>https?://.*)"
RELOAD_PATTERN = r"Detected changes, restarted server|Reloading local server\.\.\."


def build_command(command: str, config: HarnessConfig) -> str:
    """Replace the CLI prefix of ``command`` with the configured CLI.

    Raises:
        CommandUsageError: If ``command`` does not start with the prefix
    """
    prefix = f"{config.cli_prefix} "
    if not command.startswith(prefix):
        raise CommandUsageError(
            f"Commands must start with `{config.cli_prefix}` "
            f"(e.g. `{config.cli_prefix} dev`), got {command!r}"
        )
    return f"{config.cli_path} {command[len(prefix):]}"


async def run_long_lived(
    command: str,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    debug: bool = False,
    cleanup: CleanupRegistry | None = None,
    config: HarnessConfig | None = None,
) -> ProcessHarness:
    """Start ``command`` and return a handle to it.

    The caller is responsible for stopping the process, either with
    ``harness.kill()`` or by passing a ``cleanup`` registry.

    Args:
        command: Command starting with the CLI prefix
        cwd: Working directory (default: current directory)
        env: Variables overlaid on the inherited environment
        debug: Raise the CLI's log level in the child
        cleanup: Registry the new process is added to
        config: Harness configuration (default: get_config())

    Raises:
        CommandUsageError: If the prefix is missing
        SpawnError: If the command cannot be started
    """
    config = config or get_config()
    spec = CommandSpec(
        command=build_command(command, config),
        cwd=Path(cwd) if cwd is not None else Path(os.getcwd()),
        env=env,
        debug=debug,
    )
    process = await ManagedProcess.spawn(
        spec,
        debug_env_var=config.debug_env_var,
        echo_output=config.echo_output,
        term_timeout=config.term_timeout,
        kill_timeout=config.kill_timeout,
        drain_timeout=config.drain_timeout,
    )
    if cleanup is not None:
        cleanup.register(process)
    return ProcessHarness(process, read_timeout=config.read_timeout, display_command=command)


async def run(
    command: str,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    debug: bool = False,
    timeout: float | None = None,
    check: bool = False,
    cleanup: CleanupRegistry | None = None,
    config: HarnessConfig | None = None,
) -> str:
    """Run ``command`` to the end and return its output.

    If the command is still running after ``timeout`` seconds its process
    tree is killed and HarnessTimeoutError is raised with the output so far.

    Args:
        timeout: Seconds to allow (default: config.run_timeout)
        check: Raise NonZeroExitError on a non-zero exit code

    Other arguments are as for ``run_long_lived``.

    Raises:
        HarnessTimeoutError: If the command did not finish in time
        NonZeroExitError: If check is set and the command failed
    """
    config = config or get_config()
    if timeout is None:
        timeout = config.run_timeout

    harness = await run_long_lived(
        command, cwd=cwd, env=env, debug=debug, cleanup=cleanup, config=config
    )
    try:
        with anyio.fail_after(timeout):
            if check:
                return await harness.run_to_completion()
            return await harness.final_output()
    except TimeoutError:
        logger.debug(f"Killing {command!r} after {timeout}s timeout pid={harness.pid}")
        await harness.kill()
        if cleanup is not None:
            cleanup.unregister(harness.process)
        raise HarnessTimeoutError(
            f"Running {command!r} took too long ({timeout}s).",
            output=harness.output,
            timeout=timeout,
        ) from None


async def wait_for_ready(
    harness: ProcessHarness,
    timeout: float | None = None,
    config: HarnessConfig | None = None,
) -> dict[str, str]:
    """Wait for a dev server to report its URL.

    Returns:
        ``{"url": ...}``
    """
    if timeout is None:
        timeout = (config or get_config()).ready_timeout
    return await harness.attach_and_wait(READY_PATTERN, timeout)


async def wait_for_reload(harness: ProcessHarness, timeout: float | None = None) -> None:
    """Wait for a dev server to pick up a change."""
    await harness.read_until(RELOAD_PATTERN, timeout)
