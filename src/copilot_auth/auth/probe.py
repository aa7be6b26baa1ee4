"""Copilot access probe used by the login command.

A token can be valid for GitHub yet have no Copilot entitlement. The probe
sends the smallest possible chat request: a 401 or 403 means the gateway
refused the token; any other status, including a 400 about the payload,
means the token got past the authorization layer.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from copilot_auth.auth.http import DEFAULT_TIMEOUT, client_scope, post_json
from copilot_auth.provider import COPILOT_COMPLETIONS_URL, bearer_header

logger = logging.getLogger(__name__)

_PROBE_PAYLOAD = {
    "messages": [{"role": "user", "content": "test"}],
    "model": "gpt-4o",
    "max_tokens": 1,
}
_DENIED_STATUSES = frozenset({401, 403})


class AccessVerifier:
    """Check whether an access token can use the Copilot API.

    Args:
        client: Optional shared :class:`httpx.AsyncClient`.
        url: Chat completions endpoint to probe.
        timeout: Timeout for self-managed clients, in seconds.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        url: str = COPILOT_COMPLETIONS_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client
        self._url = url
        self._timeout = timeout

    async def verify(self, access_token: str) -> bool:
        """Return True unless the gateway answers 401 or 403.

        Raises:
            NetworkError: If the probe request cannot be sent.
        """
        headers = {
            "Authorization": bearer_header(access_token),
            "Content-Type": "application/json",
        }
        async with client_scope(self._client, self._timeout) as client:
            response = await post_json(client, self._url, _PROBE_PAYLOAD, headers=headers)
        logger.debug("Copilot access probe returned HTTP %s", response.status_code)
        return response.status_code not in _DENIED_STATUSES
