"""Shared HTTP plumbing for the GitHub authorization endpoints.

Every component in :mod:`copilot_auth.auth` accepts an optional
:class:`httpx.AsyncClient`. When one is injected (the router's shared client,
or a client built on :class:`httpx.MockTransport` in tests) it is used as-is
and never closed here; otherwise a short-lived client is opened per call.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from copilot_auth.exceptions import AuthServerError, NetworkError

GITHUB_DEVICE_CODE_URL = "https://github.com/login/device/code"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_COPILOT_CLIENT_ID = "Iv1.b507a08c87ecfe98"
"""Public client id of the GitHub Copilot OAuth app."""

DEVICE_SCOPE = "read:user"
DEFAULT_TIMEOUT = 30.0

JSON_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


@asynccontextmanager
async def client_scope(
    client: Optional[httpx.AsyncClient], timeout: float = DEFAULT_TIMEOUT
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield *client*, or a temporary client closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: Optional[dict[str, str]] = None,
) -> httpx.Response:
    """POST *payload* as JSON.

    Raises:
        NetworkError: On any transport-level failure.
    """
    try:
        return await client.post(url, json=payload, headers=headers or JSON_HEADERS)
    except httpx.TransportError as exc:
        raise NetworkError(f"Request to {url} failed: {exc}") from exc


def decode_json_object(response: httpx.Response, what: str) -> dict[str, Any]:
    """Decode a JSON object body, or fail with :class:`AuthServerError`."""
    try:
        data = response.json()
    except ValueError as exc:
        raise AuthServerError(
            f"{what} returned a non-JSON response (HTTP {response.status_code})",
            status_code=response.status_code,
        ) from exc
    if not isinstance(data, dict):
        raise AuthServerError(
            f"{what} returned an unexpected response shape (HTTP {response.status_code})",
            status_code=response.status_code,
        )
    return data


def server_error(
    what: str, response: httpx.Response, data: Optional[dict[str, Any]] = None
) -> AuthServerError:
    """Build an :class:`AuthServerError` from an error reply.

    Prefers the server's ``error_description``, then its ``error`` code,
    then the HTTP reason phrase.
    """
    data = data or {}
    error = data.get("error")
    description = data.get("error_description")
    detail = description or error or response.reason_phrase or f"HTTP {response.status_code}"
    return AuthServerError(
        f"{what} failed: {detail}",
        status_code=response.status_code,
        error=error,
        description=description,
    )
