"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import psutil
import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from e2e_harness.config import HarnessConfig  # noqa: E402

# Also registered through the pytest11 entry point when installed
pytest_plugins = ["e2e_harness.pytest_plugin"]

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CLI_PATH = FIXTURES_DIR / "fake_cli.py"

# Commands in tests are written as "fake-cli <args>"
FAKE_CLI_PREFIX = "fake-cli"
FAKE_CLI_COMMAND = f'"{sys.executable}" "{FAKE_CLI_PATH}"'


def make_config(**overrides) -> HarnessConfig:
    """Config driving the fake CLI with short timeouts."""
    values = dict(
        cli_prefix=FAKE_CLI_PREFIX,
        cli_path=FAKE_CLI_COMMAND.replace("\\", "/"),
        run_timeout=20.0,
        read_timeout=5.0,
        ready_timeout=5.0,
        term_timeout=0.5,
        kill_timeout=0.5,
        drain_timeout=0.5,
    )
    values.update(overrides)
    return HarnessConfig(**values)


def pid_alive(pid: int) -> bool:
    """Whether ``pid`` is a running (non-zombie) process."""
    try:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def fake_config() -> HarnessConfig:
    return make_config()


@pytest.fixture
def harness_config(fake_config: HarnessConfig) -> HarnessConfig:
    """Point the e2e_harness plugin fixtures at the fake CLI."""
    return fake_config
