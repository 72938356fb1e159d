"""E2E 环境变量配置管理。

环境变量:
    E2E_CLI_PREFIX: 命令必须以此前缀开头（默认 wrangler）
        - 例: "wrangler dev" 合法，"npx wrangler dev" 会被拒绝

    E2E_CLI: 实际执行的 CLI 路径或命令（默认与前缀相同，即从 PATH 查找）
        - 反斜杠会被替换为正斜杠，避免在 shell 中被转义

    E2E_RUN_TIMEOUT: 一次性命令的超时时间（秒，默认 50）

    E2E_READ_TIMEOUT: 等待匹配输出行的默认超时时间（秒，默认 10）

    E2E_READY_TIMEOUT: 等待 "Ready on ..." 的超时时间（秒，默认 5）

    E2E_DEBUG_ENV: debug=True 时在子进程中设置为 "debug" 的变量名
        - 默认 WRANGLER_LOG

    E2E_ECHO_OUTPUT: 是否以 INFO 级别记录每一行输出
        - true/1/yes = 开启
        - false/0/no = 关闭 (默认)

    E2E_LOG_DEBUG: 日志调试模式
        - true/1/yes = e2e_harness 日志级别设为 DEBUG
        - false/0/no = INFO (默认)

    E2E_TERM_TIMEOUT: SIGTERM 后等待退出的时间（秒，默认 2）
    E2E_KILL_TIMEOUT: SIGKILL 后等待退出的时间（秒，默认 1）
    E2E_DRAIN_TIMEOUT: 进程退出后等待输出读完的时间（秒，默认 1）
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .runtime.process_runner import DEFAULT_DEBUG_ENV_VAR, DEFAULT_DRAIN_TIMEOUT
from .runtime.tree_kill import DEFAULT_KILL_TIMEOUT, DEFAULT_TERM_TIMEOUT
from .waiter import DEFAULT_READ_TIMEOUT

__all__ = ["HarnessConfig", "load_config", "get_config", "reload_config"]

DEFAULT_CLI_PREFIX = "wrangler"
DEFAULT_RUN_TIMEOUT = 50.0
DEFAULT_READY_TIMEOUT = 5.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(
    value: str | None,
    default: float,
    minimum: float = 0.01,
    maximum: float = 3600.0,
) -> float:
    """解析秒数环境变量，无效值返回默认值，有效值限制在范围内。"""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(minimum, min(seconds, maximum))


def _parse_str(value: str | None, default: str) -> str:
    """解析字符串环境变量，空白视为未设置。"""
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass
class HarnessConfig:
    """E2E harness 配置。

    Attributes:
        cli_prefix: 命令必须使用的前缀
        cli_path: 替换前缀后实际执行的 CLI
        run_timeout: 一次性命令超时（秒）
        read_timeout: 等待匹配行的默认超时（秒）
        ready_timeout: 等待服务就绪的超时（秒）
        debug_env_var: debug 模式下设置的变量名
        echo_output: 是否记录每一行输出
        log_debug: 日志调试模式
        term_timeout: SIGTERM 后等待时间（秒）
        kill_timeout: SIGKILL 后等待时间（秒）
        drain_timeout: 退出后等待输出读完的时间（秒）
    """

    cli_prefix: str = DEFAULT_CLI_PREFIX
    cli_path: str = DEFAULT_CLI_PREFIX
    run_timeout: float = DEFAULT_RUN_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    ready_timeout: float = DEFAULT_READY_TIMEOUT
    debug_env_var: str = DEFAULT_DEBUG_ENV_VAR
    echo_output: bool = False
    log_debug: bool = False
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT

    def __repr__(self) -> str:
        return (
            f"HarnessConfig(cli_prefix={self.cli_prefix}, "
            f"cli_path={self.cli_path}, "
            f"run_timeout={self.run_timeout}, "
            f"read_timeout={self.read_timeout}, "
            f"ready_timeout={self.ready_timeout}, "
            f"debug_env_var={self.debug_env_var}, "
            f"echo_output={self.echo_output}, "
            f"log_debug={self.log_debug})"
        )


def load_config() -> HarnessConfig:
    """从环境变量加载配置。"""
    cli_prefix = _parse_str(os.environ.get("E2E_CLI_PREFIX"), DEFAULT_CLI_PREFIX)
    # 替换反斜杠，保证 Windows 路径在 shell 命令中可用
    cli_path = _parse_str(os.environ.get("E2E_CLI"), cli_prefix).replace("\\", "/")

    return HarnessConfig(
        cli_prefix=cli_prefix,
        cli_path=cli_path,
        run_timeout=_parse_float(os.environ.get("E2E_RUN_TIMEOUT"), DEFAULT_RUN_TIMEOUT),
        read_timeout=_parse_float(os.environ.get("E2E_READ_TIMEOUT"), DEFAULT_READ_TIMEOUT),
        ready_timeout=_parse_float(os.environ.get("E2E_READY_TIMEOUT"), DEFAULT_READY_TIMEOUT),
        debug_env_var=_parse_str(os.environ.get("E2E_DEBUG_ENV"), DEFAULT_DEBUG_ENV_VAR),
        echo_output=_parse_bool(os.environ.get("E2E_ECHO_OUTPUT"), default=False),
        log_debug=_parse_bool(os.environ.get("E2E_LOG_DEBUG"), default=False),
        term_timeout=_parse_float(
            os.environ.get("E2E_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, maximum=60.0
        ),
        kill_timeout=_parse_float(
            os.environ.get("E2E_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, maximum=60.0
        ),
        drain_timeout=_parse_float(
            os.environ.get("E2E_DRAIN_TIMEOUT"), DEFAULT_DRAIN_TIMEOUT, maximum=60.0
        ),
    )


# 全局配置实例（延迟加载）
_config: HarnessConfig | None = None


def get_config() -> HarnessConfig:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> HarnessConfig:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
