"""Shared test fixtures for copilot-auth.

Provides reusable fixtures for isolating the router config directory,
managing output and logging state, faking the GitHub endpoints with
:class:`httpx.MockTransport`, and running CLI commands. These fixtures are
automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Union

import httpx
import pytest

from copilot_auth.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_package_logger() -> None:
    """Undo the handler the CLI callback attaches to the package logger.

    The handler writes to the CliRunner's captured stderr, which is closed
    once the invocation ends, and ``propagate=False`` would hide records
    from ``caplog`` in later tests.
    """
    yield
    package_logger = logging.getLogger("copilot_auth")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate the router config to a temporary directory.

    Points ``CCR_CONFIG_DIR`` at a subdirectory of tmp_path so that tests
    never touch the real ``~/.claude-code-router``, clears the login
    environment variables, and changes the working directory to tmp_path.

    Returns:
        The config directory.
    """
    config_dir = tmp_path / "ccr"
    monkeypatch.setenv("CCR_CONFIG_DIR", str(config_dir))

    for var in [
        "CCR_GITHUB_CLIENT_ID",
        "CCR_GITHUB_COPILOT_PAT",
        "CCR_GITHUB_COPILOT_MODEL",
        "NON_INTERACTIVE_MODE",
        "NO_COLOR",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return config_dir


@pytest.fixture
def write_config(isolated_config: Path) -> Callable[[dict[str, Any]], Path]:
    """Factory that writes a router ``config.json`` into the isolated config dir."""

    def _write(data: dict[str, Any]) -> Path:
        isolated_config.mkdir(parents=True, exist_ok=True)
        path = isolated_config / "config.json"
        path.write_text(json.dumps(data, indent=2))
        return path

    return _write


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# HTTP fakes
# ---------------------------------------------------------------------------


Reply = Union[httpx.Response, Exception]


class ScriptedServer:
    """MockTransport handler that replays canned replies in order.

    Each entry is either an :class:`httpx.Response` or an exception to raise
    (e.g. :class:`httpx.ConnectError`). The last entry is repeated once the
    script runs out. Every request is recorded in :attr:`requests`.
    """

    def __init__(self, replies: list[Reply]) -> None:
        self._replies = list(replies)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, Exception):
            raise reply
        # The last reply may be served more than once; hand out copies.
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def scripted() -> Callable[..., ScriptedServer]:
    """Factory for :class:`ScriptedServer` instances."""

    def _make(*replies: Reply) -> ScriptedServer:
        return ScriptedServer(list(replies))

    return _make


class FakeTime:
    """Deterministic sleep/clock pair; sleeping advances the clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


class ProgressLog:
    """Collects progress callback messages."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def progress_log() -> ProgressLog:
    return ProgressLog()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()

