"""Auth commands -- set up and inspect the GitHub Copilot credential.

Provides the top-level ``login``, ``list`` and ``token`` commands. ``login``
runs the device authorization flow when an OAuth client id is available and
falls back to a Personal Access Token otherwise; either way the token is
probed for Copilot access before it is written to the router config.

Typical workflow::

    copilot-auth login          # interactive setup
    copilot-auth list           # inspect stored entries
    copilot-auth token          # print a valid token (refreshes if needed)
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional, Union

import typer
from pydantic import ValidationError

from copilot_auth.auth import AccessVerifier, AuthOrchestrator, DeviceAuthorizer
from copilot_auth.auth.validator import is_expired, now_ms
from copilot_auth.config import ConfigStore, backup_config, resolve_settings
from copilot_auth.exceptions import (
    AccessDeniedError,
    ConfigError,
    CopilotAuthError,
    PersistenceError,
)
from copilot_auth.models import (
    AuthSettings,
    CredentialKind,
    DeviceCodeResponse,
    OAuthCredential,
    PATCredential,
    ProviderConfig,
    parse_credential,
)
from copilot_auth.output import (
    OutputFormat,
    debug,
    error,
    format_any,
    get_output,
    info,
    print_data,
    progress,
    success,
    suggest,
    warning,
)
from copilot_auth.provider import COPILOT_MODELS

_PAT_SCOPES = ("copilot", "read:user")
_PAT_CREATE_URL = "https://github.com/settings/tokens/new"


def auth_login(
    client_id: Optional[str] = typer.Option(
        None,
        "--client-id",
        help="OAuth client id (default: $CCR_GITHUB_CLIENT_ID).",
    ),
    use_pat: bool = typer.Option(
        False, "--pat", help="Use a Personal Access Token instead of the device flow."
    ),
) -> None:
    """Authenticate with GitHub Copilot and store the credential.

    Uses the OAuth2 device flow when a client id is given (flag or
    ``CCR_GITHUB_CLIENT_ID``); otherwise asks for a Personal Access Token.
    The token is probed for Copilot access, the existing config is backed up,
    and the credential is written to the ``github-copilot`` provider entry.

    Raises:
        typer.Exit: With the error's exit code when any step fails.

    Example::

        copilot-auth login
        CCR_GITHUB_CLIENT_ID=Iv1.abc copilot-auth login
    """
    settings = resolve_settings()
    client_id = client_id or settings.client_id

    try:
        if use_pat or not client_id:
            if not use_pat:
                info(
                    "No OAuth client ID found. Falling back to Personal Access "
                    "Token (PAT) authentication."
                )
            credential: Union[OAuthCredential, PATCredential] = _login_with_pat(settings)
        else:
            assert client_id is not None
            credential = asyncio.run(_login_with_device_flow(client_id))

        _store_credential(ConfigStore(), credential, settings)
    except CopilotAuthError as exc:
        error(f"Authentication failed: {exc}")
        raise typer.Exit(code=exc.exit_code) from None

    success("Successfully authenticated with GitHub Copilot!")
    if credential.kind is CredentialKind.PAT:
        warning("Token is stored in plain text. Keep your config file secure.")
    info("Available models:")
    for model in COPILOT_MODELS:
        info(f"  • {model}")
    suggest("Set the default model: ccr model")


def auth_list() -> None:
    """List stored authentication entries with their status.

    Example::

        copilot-auth list
        copilot-auth --json list
    """
    store = ConfigStore()
    try:
        config = store.config
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    providers = [p for p in config.providers if p.auth]
    if not providers:
        info("No authentication entries found.")
        suggest("To add authentication: copilot-auth login")
        return

    headers = ["Provider", "Type", "Status", "Expires", "Refresh token", "Token", "Models"]
    rows = [_describe_entry(provider) for provider in providers]
    get_output().print_records(headers, rows, title="Stored Authentication Entries")
    suggest("To re-authenticate: copilot-auth login")


def auth_token() -> None:
    """Print a currently valid access token, refreshing it if needed.

    A refreshed credential is written back to the config. If that write
    fails the token is still printed and a warning is shown.

    Example::

        export COPILOT_TOKEN=$(copilot-auth token)
        copilot-auth --json token
    """
    store = ConfigStore()
    debug(f"Router config: {store.path}")
    try:
        credential = store.read_credential()
        result = asyncio.run(AuthOrchestrator().get_valid_access_token(credential))
    except CopilotAuthError as exc:
        error(str(exc))
        suggest("Re-authenticate: copilot-auth login")
        raise typer.Exit(code=exc.exit_code) from None

    if result.updated is not None:
        try:
            store.write_credential(result.updated)
        except PersistenceError as exc:
            warning(f"Failed to update config with refreshed token: {exc}")
        else:
            progress("Access token refreshed.")

    if get_output().format is OutputFormat.JSON:
        print_data(format_any({"token": result.token, "refreshed": result.changed}))
    else:
        print_data(result.token)


# ------------------------------------------------------------------ #
# Login helpers
# ------------------------------------------------------------------ #


async def _login_with_device_flow(client_id: str) -> OAuthCredential:
    """Run the device flow and probe the resulting token."""
    output = get_output()

    def _show_code(code: DeviceCodeResponse) -> None:
        output.device_code(code.verification_uri, code.user_code)

    progress("Requesting device code from GitHub...")
    token = await DeviceAuthorizer().authorize(
        client_id, on_code=_show_code, on_progress=progress
    )

    progress("Verifying GitHub Copilot access...")
    if not await AccessVerifier().verify(token.access_token):
        raise AccessDeniedError(
            "The authenticated GitHub account does not have access to GitHub "
            "Copilot. Please ensure you have an active GitHub Copilot subscription."
        )
    return OAuthCredential.from_token_response(token, client_id, now_ms())


def _login_with_pat(settings: AuthSettings) -> PATCredential:
    """Obtain a PAT from the environment or a prompt, then probe it."""
    if settings.non_interactive:
        if not settings.pat:
            raise ConfigError(
                "CCR_GITHUB_COPILOT_PAT environment variable is required in "
                "non-interactive mode"
            )
        token = settings.pat
        info("Using token from CCR_GITHUB_COPILOT_PAT environment variable")
    else:
        info(f"A GitHub Personal Access Token needs these scopes: {', '.join(_PAT_SCOPES)}")
        info(f"Create one at {_PAT_CREATE_URL}")
        token = typer.prompt(
            "Enter your GitHub Personal Access Token", hide_input=True, default=""
        ).strip()
        if not token:
            raise ConfigError("Personal Access Token is required")

    progress("Verifying GitHub Copilot access...")
    if not asyncio.run(AccessVerifier().verify(token)):
        raise AccessDeniedError(
            "The provided token does not have access to GitHub Copilot or is "
            "invalid. Please ensure you have an active GitHub Copilot "
            "subscription and the token has the required scopes."
        )
    return PATCredential(access_token=token)


def _store_credential(
    store: ConfigStore,
    credential: Union[OAuthCredential, PATCredential],
    settings: AuthSettings,
) -> None:
    """Back up the config, then write the credential and default model."""
    debug(f"Router config: {store.path}")
    backup_path = backup_config(store.path)
    if backup_path is not None:
        info(f"Backed up existing configuration to {backup_path}")

    if settings.default_model:
        config = store.config
        config.router = {**(config.router or {}), "default": settings.default_model}
        info(f"Set default model to {settings.default_model} from CCR_GITHUB_COPILOT_MODEL")

    store.write_credential(credential)


# ------------------------------------------------------------------ #
# Listing helpers
# ------------------------------------------------------------------ #


def _describe_entry(provider: ProviderConfig) -> list[str]:
    """Return one table row for a provider with stored auth."""
    models = _summarise_models(provider.models)
    assert provider.auth is not None
    try:
        credential = parse_credential(provider.auth)
    except ValidationError:
        return [provider.name, "?", "invalid", "-", "-", "-", models]

    if isinstance(credential, PATCredential):
        masked = f"{(credential.access_token or '')[:8]}..."
        return [provider.name, "PAT", "valid", "never", "-", masked, models]

    expires_at = credential.expires_at
    if expires_at is None:
        status, expires = "expired", "unknown"
    else:
        status = "expired" if is_expired(expires_at) else "valid"
        expires = datetime.fromtimestamp(expires_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
    refresh = "yes" if credential.refresh_token else "no"
    return [provider.name, "OAUTH", status, expires, refresh, "-", models]


def _summarise_models(models: list[str]) -> str:
    if not models:
        return "-"
    shown = ", ".join(models[:3])
    if len(models) > 3:
        shown += f" (+{len(models) - 3} more)"
    return shown
