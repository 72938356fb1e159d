"""Command-line entry point tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_config
from e2e_harness import __main__ as main_module


@pytest.fixture(autouse=True)
def fake_cli_config(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(main_module, "get_config", lambda: make_config())


def parse(*argv: str):
    return main_module._build_parser().parse_args(list(argv))


class TestOneShot:
    """Test running to completion."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_exit_code_passed_through(self, temp_workspace: Path, capsys):
        args = parse("fake-cli --lines 1 --exit-code 3", "--cwd", str(temp_workspace))

        assert await main_module._run(args) == 3
        assert "out line 1" in capsys.readouterr().out

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_timeout(self, temp_workspace: Path, monkeypatch: pytest.MonkeyPatch):
        started = []
        real_run_long_lived = main_module.run_long_lived

        async def recording_run_long_lived(*args, **kwargs):
            harness = await real_run_long_lived(*args, **kwargs)
            started.append(harness)
            return harness

        monkeypatch.setattr(main_module, "run_long_lived", recording_run_long_lived)
        args = parse("fake-cli --duration 60", "--cwd", str(temp_workspace), "--timeout", "0.5")

        assert await main_module._run(args) == 1
        assert not started[0].process.is_running


class TestUntil:
    """Test waiting for a pattern."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_prints_groups(self, temp_workspace: Path, capsys):
        args = parse(
            "fake-cli dev --ready-url http://localhost:1234 --duration 60",
            "--cwd", str(temp_workspace),
            "--until", r"Ready on (?P<url>\S+)",
            "--timeout", "5",
        )

        assert await main_module._run(args) == 0
        assert "url=http://localhost:1234" in capsys.readouterr().out

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_stream_closed(self, temp_workspace: Path):
        args = parse(
            "fake-cli --lines 1",
            "--cwd", str(temp_workspace),
            "--until", "NEVER_HAPPENS",
            "--timeout", "5",
        )

        assert await main_module._run(args) == 1
