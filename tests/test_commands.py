"""CLI tests for the ``login``, ``list`` and ``token`` commands.

The GitHub endpoints are replaced by fakes patched into
:mod:`copilot_auth.commands.auth`, so these tests exercise argument
handling, output discipline and config persistence only.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import pytest
import typer
from typer.testing import CliRunner

from copilot_auth import __version__
from copilot_auth.app import main_callback
from copilot_auth.auth.orchestrator import AuthOrchestrator
from copilot_auth.commands.auth import auth_list, auth_login, auth_token
from copilot_auth.exceptions import AuthorizationDenied
from copilot_auth.models import DeviceCodeResponse, TokenResponse

FAR_FUTURE_MS = 4_102_444_800_000  # 2100-01-01


def _build_app() -> typer.Typer:
    """Build a Typer app with the real root callback and the auth commands.

    Registering the callback keeps Typer in group mode so the command name
    is required in the args, and wires the global output flags.
    """
    app = typer.Typer(name="copilot-auth", no_args_is_help=True, add_completion=False)
    app.callback()(main_callback)
    app.command("login")(auth_login)
    app.command("list")(auth_list)
    app.command("token")(auth_token)
    return app


@pytest.fixture
def app() -> typer.Typer:
    return _build_app()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeAuthorizer:
    """Replaces DeviceAuthorizer: shows a code, then returns or raises."""

    token = TokenResponse(
        access_token="gho_device", refresh_token="ghr_device", expires_in=28800
    )
    error: Optional[Exception] = None
    client_ids: list[Optional[str]] = []

    async def authorize(
        self,
        client_id: Optional[str] = None,
        on_code: Any = None,
        on_progress: Any = None,
        cancel: Any = None,
    ) -> TokenResponse:
        type(self).client_ids.append(client_id)
        if on_code is not None:
            on_code(
                DeviceCodeResponse(
                    device_code="dev-123",
                    user_code="ABCD-1234",
                    verification_uri="https://github.com/login/device",
                )
            )
        if self.error is not None:
            raise self.error
        return self.token


class FakeVerifier:
    allowed = True
    probed: list[str] = []

    async def verify(self, access_token: str) -> bool:
        type(self).probed.append(access_token)
        return self.allowed


class StubRefresher:
    async def refresh(self, refresh_token: str, client_id: Optional[str] = None) -> TokenResponse:
        return TokenResponse(access_token="fresh-access", refresh_token="fresh-refresh", expires_in=28800)


@pytest.fixture
def fakes(monkeypatch: pytest.MonkeyPatch) -> None:
    """Patch the network-facing classes used by the commands."""
    monkeypatch.setattr(FakeAuthorizer, "error", None)
    monkeypatch.setattr(FakeAuthorizer, "client_ids", [])
    monkeypatch.setattr(FakeVerifier, "allowed", True)
    monkeypatch.setattr(FakeVerifier, "probed", [])
    monkeypatch.setattr("copilot_auth.commands.auth.DeviceAuthorizer", FakeAuthorizer)
    monkeypatch.setattr("copilot_auth.commands.auth.AccessVerifier", FakeVerifier)
    monkeypatch.setattr(
        "copilot_auth.commands.auth.AuthOrchestrator",
        lambda: AuthOrchestrator(refresher=StubRefresher()),  # type: ignore[arg-type]
    )


def _copilot_auth(config_dir: Path) -> dict[str, Any]:
    data = json.loads((config_dir / "config.json").read_text())
    for provider in data["Providers"]:
        if provider["name"] == "github-copilot":
            return provider["auth"]
    raise AssertionError("no github-copilot provider in config")


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLoginDeviceFlow:
    def test_device_flow_success(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("CCR_GITHUB_CLIENT_ID", "Iv1.env")
        result = cli_runner.invoke(app, ["--no-color", "login"])

        assert result.exit_code == 0, result.output
        assert "ABCD-1234" in result.output
        assert "https://github.com/login/device" in result.output
        assert "Successfully authenticated" in result.output
        assert FakeAuthorizer.client_ids == ["Iv1.env"]
        assert FakeVerifier.probed == ["gho_device"]

        auth = _copilot_auth(isolated_config)
        assert auth["type"] == "oauth"
        assert auth["client_id"] == "Iv1.env"
        assert auth["access_token"] == "gho_device"
        assert auth["refresh_token"] == "ghr_device"
        assert auth["expires_at"] > 0

    def test_client_id_flag_wins(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("CCR_GITHUB_CLIENT_ID", "Iv1.env")
        result = cli_runner.invoke(app, ["--no-color", "login", "--client-id", "Iv1.flag"])

        assert result.exit_code == 0, result.output
        assert FakeAuthorizer.client_ids == ["Iv1.flag"]
        assert _copilot_auth(isolated_config)["client_id"] == "Iv1.flag"

    def test_denied(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(FakeAuthorizer, "error", AuthorizationDenied("Authorization was denied."))
        result = cli_runner.invoke(app, ["--no-color", "login", "--client-id", "Iv1.abc"])

        assert result.exit_code == 3
        assert "Authentication failed: Authorization was denied." in result.output
        assert not (isolated_config / "config.json").exists()

    def test_no_copilot_access(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(FakeVerifier, "allowed", False)
        result = cli_runner.invoke(app, ["--no-color", "login", "--client-id", "Iv1.abc"])

        assert result.exit_code == 3
        assert "does not have access to GitHub Copilot" in result.output
        assert not (isolated_config / "config.json").exists()

    def test_backup_failure_exits_cleanly(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        write_config,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = write_config({"Providers": []})

        def _read_only(src: object, dst: object) -> None:
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr("copilot_auth.config.shutil.copy2", _read_only)
        result = cli_runner.invoke(app, ["--no-color", "login", "--client-id", "Iv1.abc"])

        assert result.exit_code == 8
        assert "Authentication failed: Cannot back up" in result.output
        assert json.loads(path.read_text()) == {"Providers": []}

    def test_backs_up_existing_config(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        write_config,
        isolated_config: Path,
        fakes: None,
    ) -> None:
        write_config({"Providers": [{"name": "deepseek", "api_key": "sk-d"}]})
        result = cli_runner.invoke(app, ["--no-color", "login", "--client-id", "Iv1.abc"])

        assert result.exit_code == 0, result.output
        backups = list(isolated_config.glob("config.json.*.bak"))
        assert len(backups) == 1
        assert "github-copilot" not in backups[0].read_text()
        providers = json.loads((isolated_config / "config.json").read_text())["Providers"]
        assert [p["name"] for p in providers] == ["deepseek", "github-copilot"]


class TestLoginPAT:
    def test_non_interactive(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("NON_INTERACTIVE_MODE", "true")
        monkeypatch.setenv("CCR_GITHUB_COPILOT_PAT", "ghp_from_env")
        monkeypatch.setenv("CCR_GITHUB_COPILOT_MODEL", "github-copilot,gpt-4o")
        result = cli_runner.invoke(app, ["--no-color", "login"])

        assert result.exit_code == 0, result.output
        assert "Falling back to Personal Access Token" in result.output
        assert "stored in plain text" in result.output
        assert FakeVerifier.probed == ["ghp_from_env"]
        assert _copilot_auth(isolated_config) == {"type": "pat", "access_token": "ghp_from_env"}

        data = json.loads((isolated_config / "config.json").read_text())
        assert data["Router"] == {"default": "github-copilot,gpt-4o"}

    def test_non_interactive_without_token(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("NON_INTERACTIVE_MODE", "true")
        result = cli_runner.invoke(app, ["--no-color", "login", "--pat"])

        assert result.exit_code == 1
        assert "CCR_GITHUB_COPILOT_PAT environment variable is required" in result.output
        assert FakeVerifier.probed == []

    def test_prompted(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
    ) -> None:
        result = cli_runner.invoke(app, ["--no-color", "login", "--pat"], input="ghp_typed\n")

        assert result.exit_code == 0, result.output
        assert "ghp_typed" not in result.output
        assert _copilot_auth(isolated_config)["access_token"] == "ghp_typed"

    def test_prompted_empty(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
    ) -> None:
        result = cli_runner.invoke(app, ["--no-color", "login", "--pat"], input="\n")

        assert result.exit_code == 1
        assert "Personal Access Token is required" in result.output

    def test_rejected_token(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        isolated_config: Path,
        fakes: None,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(FakeVerifier, "allowed", False)
        result = cli_runner.invoke(app, ["--no-color", "login", "--pat"], input="ghp_bad\n")

        assert result.exit_code == 3
        assert "does not have access to GitHub Copilot or is invalid" in result.output


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


class TestList:
    def test_empty(self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "list"])

        assert result.exit_code == 0
        assert "No authentication entries found." in result.output

    def test_json_records(
        self, cli_runner: CliRunner, app: typer.Typer, write_config
    ) -> None:
        write_config(
            {
                "Providers": [
                    {
                        "name": "github-copilot",
                        "models": ["gpt-4o", "o1", "gpt-5", "gemini-2.5-pro"],
                        "auth": {
                            "type": "oauth",
                            "access_token": "a",
                            "refresh_token": "r",
                            "expires_at": FAR_FUTURE_MS,
                        },
                    },
                    {
                        "name": "copilot-pat",
                        "models": [],
                        "auth": {"type": "pat", "access_token": "ghp_1234567890"},
                    },
                    {"name": "deepseek", "api_key": "sk-d"},
                ]
            }
        )
        result = cli_runner.invoke(app, ["--json", "-q", "list"])

        assert result.exit_code == 0, result.output
        records = json.loads(result.stdout)
        assert [r["Provider"] for r in records] == ["github-copilot", "copilot-pat"]

        oauth, pat = records
        assert oauth["Type"] == "OAUTH"
        assert oauth["Status"] == "valid"
        assert oauth["Refresh token"] == "yes"
        assert oauth["Models"] == "gpt-4o, o1, gpt-5 (+1 more)"
        assert pat["Type"] == "PAT"
        assert pat["Token"] == "ghp_1234..."
        assert pat["Expires"] == "never"
        assert pat["Models"] == "-"

    def test_expired_and_invalid_entries(
        self, cli_runner: CliRunner, app: typer.Typer, write_config
    ) -> None:
        write_config(
            {
                "Providers": [
                    {"name": "old", "auth": {"access_token": "a", "expires_at": 1}},
                    {"name": "broken", "auth": {"type": "magic"}},
                ]
            }
        )
        result = cli_runner.invoke(app, ["--plain", "-q", "list"])

        assert result.exit_code == 0, result.output
        lines = result.stdout.strip().splitlines()
        assert lines[0].split("\t")[0] == "Provider"
        assert lines[1].split("\t")[:3] == ["old", "OAUTH", "expired"]
        assert lines[2].split("\t")[:3] == ["broken", "?", "invalid"]

    def test_token_inside_refresh_margin_is_expired(
        self, cli_runner: CliRunner, app: typer.Typer, write_config
    ) -> None:
        soon = int(time.time() * 1000) + 60_000
        write_config(
            {"Providers": [{"name": "github-copilot", "auth": {"access_token": "a", "expires_at": soon}}]}
        )
        result = cli_runner.invoke(app, ["--json", "-q", "list"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)[0]["Status"] == "expired"

    def test_invalid_config_file(
        self, cli_runner: CliRunner, app: typer.Typer, write_config
    ) -> None:
        path = write_config({})
        path.write_text("{oops")
        result = cli_runner.invoke(app, ["--no-color", "list"])

        assert result.exit_code == 1
        assert "Invalid router config" in result.output


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


class TestToken:
    def test_not_configured(
        self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path, fakes: None
    ) -> None:
        result = cli_runner.invoke(app, ["--no-color", "token"])

        assert result.exit_code == 3
        assert "not configured" in result.output

    def test_fresh_token(
        self, cli_runner: CliRunner, app: typer.Typer, write_config, fakes: None
    ) -> None:
        path = write_config(
            {
                "Providers": [
                    {
                        "name": "github-copilot",
                        "auth": {"type": "oauth", "access_token": "live", "expires_at": FAR_FUTURE_MS},
                    }
                ]
            }
        )
        before = path.read_text()
        result = cli_runner.invoke(app, ["token"])

        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "live"
        assert path.read_text() == before

    def test_expired_token_is_refreshed_and_saved(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        write_config,
        isolated_config: Path,
        fakes: None,
    ) -> None:
        write_config(
            {
                "Providers": [
                    {
                        "name": "github-copilot",
                        "auth": {
                            "type": "oauth",
                            "access_token": "stale",
                            "refresh_token": "r",
                            "expires_at": 1,
                        },
                    }
                ]
            }
        )
        result = cli_runner.invoke(app, ["-q", "token"])

        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "fresh-access"
        auth = _copilot_auth(isolated_config)
        assert auth["access_token"] == "fresh-access"
        assert auth["refresh_token"] == "fresh-refresh"

    def test_verbose_names_config_file(
        self,
        cli_runner: CliRunner,
        app: typer.Typer,
        write_config,
        isolated_config: Path,
        fakes: None,
    ) -> None:
        write_config(
            {"Providers": [{"name": "github-copilot", "auth": {"type": "pat", "access_token": "ghp_x"}}]}
        )
        result = cli_runner.invoke(app, ["-v", "--no-color", "token"])

        assert result.exit_code == 0, result.output
        assert f"[debug] Router config: {isolated_config / 'config.json'}" in result.output

    def test_json_output(
        self, cli_runner: CliRunner, app: typer.Typer, write_config, fakes: None
    ) -> None:
        write_config(
            {"Providers": [{"name": "github-copilot", "auth": {"type": "pat", "access_token": "ghp_x"}}]}
        )
        result = cli_runner.invoke(app, ["--json", "-q", "token"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"token": "ghp_x", "refreshed": False}

    def test_expired_without_refresh_token(
        self, cli_runner: CliRunner, app: typer.Typer, write_config, fakes: None
    ) -> None:
        write_config(
            {
                "Providers": [
                    {"name": "github-copilot", "auth": {"type": "oauth", "access_token": "stale", "expires_at": 1}}
                ]
            }
        )
        result = cli_runner.invoke(app, ["--no-color", "token"])

        assert result.exit_code == 3
        assert "no refresh token available" in result.output
        assert "copilot-auth login" in result.output


# ---------------------------------------------------------------------------
# Root callback
# ---------------------------------------------------------------------------


class TestRootCallback:
    def test_version(self, cli_runner: CliRunner, app: typer.Typer) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"copilot-auth {__version__}" in result.output

    def test_verbose_enables_debug_logging(
        self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path
    ) -> None:
        cli_runner.invoke(app, ["-v", "--no-color", "list"])
        assert logging.getLogger("copilot_auth").level == logging.DEBUG

    def test_default_logging_level(
        self, cli_runner: CliRunner, app: typer.Typer, isolated_config: Path
    ) -> None:
        cli_runner.invoke(app, ["--no-color", "list"])
        assert logging.getLogger("copilot_auth").level == logging.WARNING
