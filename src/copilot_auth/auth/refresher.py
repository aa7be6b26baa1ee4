"""Refresh-token grant against the GitHub token endpoint."""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from copilot_auth.auth.http import (
    DEFAULT_TIMEOUT,
    GITHUB_COPILOT_CLIENT_ID,
    GITHUB_TOKEN_URL,
    client_scope,
    decode_json_object,
    post_json,
    server_error,
)
from copilot_auth.exceptions import AuthServerError
from copilot_auth.models import TokenResponse

logger = logging.getLogger(__name__)


class TokenRefresher:
    """Exchange a refresh token for a new token set.

    Holds no per-credential state, so one instance can serve any number of
    credentials concurrently. Serialising refreshes of the *same* credential
    is the orchestrator's job.

    Args:
        client: Optional shared :class:`httpx.AsyncClient`.
        token_url: Token endpoint URL.
        timeout: Timeout for self-managed clients, in seconds.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        token_url: str = GITHUB_TOKEN_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client
        self._token_url = token_url
        self._timeout = timeout

    async def refresh(
        self, refresh_token: str, client_id: Optional[str] = None
    ) -> TokenResponse:
        """Run the ``refresh_token`` grant.

        Args:
            refresh_token: The stored refresh token.
            client_id: OAuth client id; defaults to the Copilot app's id.

        Returns:
            The new :class:`~copilot_auth.models.TokenResponse`.

        Raises:
            NetworkError: On transport failure.
            AuthServerError: If the server rejects the grant, either with an
                error status or with an ``error`` field in a 200 reply.
        """
        payload = {
            "client_id": client_id or GITHUB_COPILOT_CLIENT_ID,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        async with client_scope(self._client, self._timeout) as client:
            response = await post_json(client, self._token_url, payload)

        if not response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = None
            raise server_error(
                "Token refresh", response, data if isinstance(data, dict) else None
            )

        data = decode_json_object(response, "Token refresh")
        if data.get("error"):
            raise server_error("Token refresh", response, data)

        try:
            token = TokenResponse.model_validate(data)
        except ValidationError as exc:
            raise AuthServerError(
                "Token refresh response missing 'access_token'",
                status_code=response.status_code,
            ) from exc
        logger.debug("Refreshed access token (expires_in=%s)", token.expires_in)
        return token
