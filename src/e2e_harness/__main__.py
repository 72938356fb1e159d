"""E2E Harness 命令行入口。

支持: python -m e2e_harness "wrangler dev" --until "Ready on (?P<url>\\S+)"

- 指定 --until: 等待匹配行，输出命名分组 (key=value)，然后终止进程树
- 未指定 --until: 运行到结束，输出全部内容，以命令的退出码退出
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import anyio

from .commands import run_long_lived
from .config import get_config
from .errors import HarnessError, HarnessTimeoutError, StreamClosedError

__all__ = ["main"]

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m e2e_harness",
        description="Run a CLI command under the e2e harness",
    )
    parser.add_argument("command", help='Command line, e.g. "wrangler dev"')
    parser.add_argument("--cwd", default=None, help="Working directory")
    parser.add_argument("--until", default=None, help="Regex to wait for, then stop")
    parser.add_argument("--timeout", type=float, default=None, help="Timeout in seconds")
    parser.add_argument("--debug", action="store_true", help="Enable the CLI's debug logging")
    return parser


async def _run(args: argparse.Namespace) -> int:
    config = get_config()
    harness = await run_long_lived(args.command, cwd=args.cwd, debug=args.debug, config=config)

    if args.until is None:
        timeout = args.timeout if args.timeout is not None else config.run_timeout
        try:
            with anyio.fail_after(timeout):
                returncode = await harness.wait()
        except TimeoutError:
            await harness.kill()
            print(harness.output)
            logger.error(f"Running {args.command!r} took too long ({timeout}s)")
            return 1
        print(harness.output)
        return returncode

    try:
        groups = await harness.attach_and_wait(args.until, args.timeout)
    except (HarnessTimeoutError, StreamClosedError) as e:
        logger.error(str(e))
        return 1
    finally:
        await harness.kill()

    for key, value in groups.items():
        print(f"{key}={value}")
    return 0


def main() -> None:
    """主入口点。"""
    config = get_config()

    # 默认模式：输出到 stderr
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=[stderr_handler])
    # 只对 e2e_harness 命名空间启用详细日志
    logging.getLogger("e2e_harness").setLevel(logging.DEBUG if config.log_debug else logging.INFO)

    args = _build_parser().parse_args()
    try:
        sys.exit(asyncio.run(_run(args)))
    except HarnessError as e:
        logger.error(str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()
