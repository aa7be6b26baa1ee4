"""Request-time Copilot token injection.

The router calls :class:`CopilotAuthMiddleware` before dispatching a
``/v1/messages`` request. When the request is routed to the Copilot provider
the middleware obtains a valid access token, installs it as the provider's
``api_key``, and writes the config back only if the credential was refreshed.

A failed config write is logged and the request proceeds with the in-memory
token. Any other authentication failure produces an :class:`AuthFailure`
that the router returns as a 401 instead of forwarding an unauthenticated
request upstream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from copilot_auth.auth.orchestrator import AuthOrchestrator
from copilot_auth.config import ConfigStore
from copilot_auth.exceptions import ConfigError, CopilotAuthError, PersistenceError
from copilot_auth.provider import find_copilot_provider, routes_to_copilot

logger = logging.getLogger(__name__)

MESSAGES_PATH_PREFIX = "/v1/messages"


@dataclass
class AuthFailure:
    """Response the router should send instead of forwarding the request."""

    message: str
    status_code: int = 401
    body: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.body:
            self.body = {
                "error": "GitHub Copilot authentication failed",
                "message": self.message,
            }


class CopilotAuthMiddleware:
    """Inject a valid Copilot token into the router config before dispatch.

    Args:
        store: The :class:`~copilot_auth.config.ConfigStore` holding the
            router config the router dispatches from.
        orchestrator: Shared :class:`~copilot_auth.auth.orchestrator.AuthOrchestrator`.
            One instance must be shared by all requests so refreshes are
            serialised.

    Example::

        middleware = CopilotAuthMiddleware(ConfigStore())
        failure = await middleware(request.url.path, body)
        if failure is not None:
            return JSONResponse(failure.body, status_code=failure.status_code)
    """

    def __init__(
        self,
        store: ConfigStore,
        orchestrator: Optional[AuthOrchestrator] = None,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator or AuthOrchestrator()

    async def __call__(
        self, path: str, body: Optional[dict[str, Any]] = None
    ) -> Optional[AuthFailure]:
        """Prepare the Copilot provider for one request.

        Args:
            path: Request path.
            body: Decoded JSON request body; only ``model`` is read.

        Returns:
            ``None`` to continue dispatching, or an :class:`AuthFailure`.
        """
        if not path.startswith(MESSAGES_PATH_PREFIX):
            return None

        try:
            provider = find_copilot_provider(self._store.config)
        except ConfigError as exc:
            logger.error("Cannot read router config: %s", exc)
            return AuthFailure(message=str(exc))
        if provider is None or not provider.auth:
            return None

        model = str((body or {}).get("model") or "")
        if not routes_to_copilot(provider, model):
            return None

        try:
            credential = self._store.read_credential()
            result = await self._orchestrator.get_valid_access_token(
                credential, key=provider.name
            )
        except CopilotAuthError as exc:
            logger.error("GitHub Copilot authentication error: %s", exc)
            return AuthFailure(message=str(exc))

        provider.api_key = result.token

        if result.updated is not None:
            try:
                self._store.write_credential(result.updated)
            except PersistenceError as exc:
                logger.error("Failed to update config with refreshed token: %s", exc)
        return None
