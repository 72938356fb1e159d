"""pytest fixtures for driving a CLI from end-to-end tests.

Loaded automatically through the ``pytest11`` entry point.

Example:
    @pytest.mark.asyncio
    async def test_dev(run_cli, wait_for_ready):
        worker = await run_cli("wrangler dev")
        ready = await wait_for_ready(worker)
        assert ready["url"].startswith("http://")
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from pathlib import Path

import pytest
import pytest_asyncio

from . import commands
from .cleanup import CleanupRegistry
from .config import HarnessConfig, get_config
from .harness import ProcessHarness

RunCli = Callable[..., Awaitable[ProcessHarness]]


def pytest_configure(config: pytest.Config) -> None:
    harness_config = get_config()
    level = logging.DEBUG if harness_config.log_debug else logging.INFO
    logging.getLogger("e2e_harness").setLevel(level)


@pytest.fixture
def harness_config() -> HarnessConfig:
    """Harness configuration loaded from E2E_* variables."""
    return get_config()


@pytest_asyncio.fixture
async def cleanup_registry(harness_config: HarnessConfig) -> AsyncIterator[CleanupRegistry]:
    """Registry whose processes are terminated after the test."""
    registry = CleanupRegistry(
        term_timeout=harness_config.term_timeout,
        kill_timeout=harness_config.kill_timeout,
    )
    try:
        yield registry
    finally:
        await registry.teardown_all()


@pytest_asyncio.fixture
async def run_cli(
    tmp_path: Path,
    cleanup_registry: CleanupRegistry,
    harness_config: HarnessConfig,
) -> AsyncIterator[RunCli]:
    """Factory starting long-lived commands in tmp_path."""

    async def _run(
        command: str,
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        debug: bool = False,
    ) -> ProcessHarness:
        return await commands.run_long_lived(
            command,
            cwd=cwd if cwd is not None else tmp_path,
            env=env,
            debug=debug,
            cleanup=cleanup_registry,
            config=harness_config,
        )

    yield _run


@pytest.fixture
def wait_for_ready(harness_config: HarnessConfig) -> Callable[..., Awaitable[dict[str, str]]]:
    async def _wait(harness: ProcessHarness, timeout: float | None = None) -> dict[str, str]:
        return await commands.wait_for_ready(harness, timeout, config=harness_config)

    return _wait


@pytest.fixture
def wait_for_reload() -> Callable[..., Awaitable[None]]:
    return commands.wait_for_reload
