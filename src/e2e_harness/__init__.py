"""E2E Harness - supervise long-running CLI processes from async tests.

环境变量:
    E2E_CLI_PREFIX: 命令前缀（默认 wrangler）
    E2E_CLI: 实际执行的 CLI
    E2E_ECHO_OUTPUT: 是否记录每一行输出 (默认 false)

用法:
    python -m e2e_harness "wrangler dev" --until "Ready on (?P<url>\\S+)"
"""

__version__ = "0.1.0"

from .cleanup import CleanupRegistry
from .commands import run, run_long_lived, wait_for_ready, wait_for_reload
from .config import HarnessConfig, get_config
from .errors import (
    CleanupError,
    CommandUsageError,
    HarnessError,
    HarnessTimeoutError,
    NonZeroExitError,
    SpawnError,
    StreamClosedError,
)
from .harness import ProcessHarness
from .runtime import CommandSpec, ManagedProcess, kill_tree

__all__ = [
    "__version__",
    "CleanupError",
    "CleanupRegistry",
    "CommandSpec",
    "CommandUsageError",
    "HarnessConfig",
    "HarnessError",
    "HarnessTimeoutError",
    "ManagedProcess",
    "NonZeroExitError",
    "ProcessHarness",
    "SpawnError",
    "StreamClosedError",
    "get_config",
    "kill_tree",
    "run",
    "run_long_lived",
    "wait_for_ready",
    "wait_for_reload",
]
