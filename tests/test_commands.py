"""Command front-end tests.

Test coverage:
- Prefix enforcement and substitution
- Bounded-lifetime run, including kill on timeout
- Debug flag reaching the child only
- Readiness helpers
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from conftest import make_config, pid_alive
from e2e_harness.cleanup import CleanupRegistry
from e2e_harness.commands import (
    build_command,
    run,
    run_long_lived,
    wait_for_ready,
    wait_for_reload,
)
from e2e_harness.config import HarnessConfig
from e2e_harness.errors import (
    CommandUsageError,
    HarnessTimeoutError,
    NonZeroExitError,
    SpawnError,
)


@pytest.fixture
def config() -> HarnessConfig:
    return make_config()


# =============================================================================
# build_command Tests
# =============================================================================


class TestBuildCommand:
    """Test prefix handling."""

    def test_prefix_replaced(self):
        config = HarnessConfig(cli_prefix="wrangler", cli_path="/opt/bin/wrangler")
        assert build_command("wrangler dev --local", config) == "/opt/bin/wrangler dev --local"

    def test_missing_prefix_rejected(self):
        config = HarnessConfig(cli_prefix="wrangler", cli_path="wrangler")
        with pytest.raises(CommandUsageError) as exc_info:
            build_command("npx wrangler dev", config)
        assert "must start with `wrangler`" in str(exc_info.value)

    def test_prefix_needs_separator(self):
        config = HarnessConfig(cli_prefix="wrangler", cli_path="wrangler")
        with pytest.raises(CommandUsageError):
            build_command("wranglerdev", config)

    def test_usage_error_is_value_error(self):
        with pytest.raises(ValueError):
            build_command("ls", HarnessConfig())

    @pytest.mark.asyncio
    async def test_rejected_before_spawn(self, temp_workspace: Path, config):
        registry = CleanupRegistry()
        with pytest.raises(CommandUsageError):
            await run_long_lived("python -V", cwd=temp_workspace, cleanup=registry, config=config)
        assert len(registry) == 0


# =============================================================================
# run Tests
# =============================================================================


class TestRun:
    """Test the bounded-lifetime wrapper."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_returns_output(self, temp_workspace: Path, config):
        output = await run("fake-cli --lines 2", cwd=temp_workspace, config=config)
        assert output == "out line 1\nout line 2"

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_failure_returns_output_without_check(self, temp_workspace: Path, config):
        output = await run("fake-cli --lines 1 --exit-code 1", cwd=temp_workspace, config=config)
        assert output == "out line 1"

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_check_raises(self, temp_workspace: Path, config):
        with pytest.raises(NonZeroExitError) as exc_info:
            await run(
                "fake-cli --stderr boom --exit-code 1",
                cwd=temp_workspace,
                check=True,
                config=config,
            )
        assert "boom" in str(exc_info.value)
        assert "fake-cli --stderr boom --exit-code 1" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_timeout_kills_process(self, temp_workspace: Path, config):
        registry = CleanupRegistry(term_timeout=0.5, kill_timeout=0.5)

        with pytest.raises(HarnessTimeoutError) as exc_info:
            await run(
                "fake-cli --lines 2 --spawn-child --duration 60",
                cwd=temp_workspace,
                timeout=1.0,
                cleanup=registry,
                config=config,
            )

        error = exc_info.value
        assert "took too long (1.0s)" in str(error)
        assert "out line 2" in error.output
        assert error.timeout == 1.0

        # The process tree is gone and no longer tracked
        assert len(registry) == 0
        child = int(error.output.split("child pid ")[1].split("\n")[0])
        loop = asyncio.get_running_loop()
        deadline = loop.time() + 3.0
        while pid_alive(child) and loop.time() < deadline:
            await asyncio.sleep(0.05)
        assert not pid_alive(child)

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_default_timeout_from_config(self, temp_workspace: Path):
        config = make_config(run_timeout=0.5)
        with pytest.raises(HarnessTimeoutError) as exc_info:
            await run("fake-cli --duration 60", cwd=temp_workspace, config=config)
        assert exc_info.value.timeout == 0.5

    @pytest.mark.asyncio
    async def test_missing_cwd(self, tmp_path: Path, config):
        with pytest.raises(SpawnError):
            await run("fake-cli --lines 1", cwd=tmp_path / "missing", config=config)


# =============================================================================
# Environment Tests
# =============================================================================


class TestEnvironment:
    """Test environment and debug handling through the front-end."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_debug_flag(self, temp_workspace: Path):
        config = make_config(debug_env_var="FAKE_CLI_LOG")
        output = await run(
            "fake-cli --print-env FAKE_CLI_LOG", cwd=temp_workspace, debug=True, config=config
        )
        assert output == "FAKE_CLI_LOG=debug"
        assert "FAKE_CLI_LOG" not in os.environ

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_no_debug_by_default(self, temp_workspace: Path):
        config = make_config(debug_env_var="FAKE_CLI_LOG")
        output = await run("fake-cli --print-env FAKE_CLI_LOG", cwd=temp_workspace, config=config)
        assert output == "FAKE_CLI_LOG="

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_env_overlay(self, temp_workspace: Path, config):
        output = await run(
            "fake-cli --print-env ACCOUNT_ID",
            cwd=temp_workspace,
            env={"ACCOUNT_ID": "abc123"},
            config=config,
        )
        assert output == "ACCOUNT_ID=abc123"


# =============================================================================
# Readiness Helper Tests
# =============================================================================


class TestReadiness:
    """Test wait_for_ready / wait_for_reload."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_wait_for_ready(self, temp_workspace: Path, config):
        registry = CleanupRegistry(term_timeout=0.5, kill_timeout=0.5)
        try:
            harness = await run_long_lived(
                "fake-cli dev --ready-url http://127.0.0.1:8787 --duration 30",
                cwd=temp_workspace,
                cleanup=registry,
                config=config,
            )
            assert await wait_for_ready(harness, config=config) == {"url": "http://127.0.0.1:8787"}
        finally:
            await registry.teardown_all()

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_wait_for_reload(self, temp_workspace: Path, config):
        registry = CleanupRegistry(term_timeout=0.5, kill_timeout=0.5)
        try:
            harness = await run_long_lived(
                "fake-cli dev --marker Reloading --interval 0.1 --duration 30",
                cwd=temp_workspace,
                cleanup=registry,
                config=config,
            )
            with pytest.raises(HarnessTimeoutError):
                await wait_for_reload(harness, timeout=0.3)
        finally:
            await registry.teardown_all()

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_wait_for_reload_matches(self, temp_workspace: Path, config):
        registry = CleanupRegistry(term_timeout=0.5, kill_timeout=0.5)
        try:
            harness = await run_long_lived(
                'fake-cli dev --no-newline "Reloading local server..." --duration 0.2',
                cwd=temp_workspace,
                cleanup=registry,
                config=config,
            )
            await wait_for_reload(harness, timeout=5.0)
        finally:
            await registry.teardown_all()
