"""Request-time token lifecycle.

:class:`AuthOrchestrator` turns a stored credential into a bearer token that
is good for the next request, refreshing it when it is about to expire. It
never persists anything: a refresh is reported through
:attr:`TokenResult.updated <copilot_auth.models.TokenResult.updated>` and
the caller writes it back to the config.

Refreshes are serialised per credential key. Callers that were waiting on
the lock while another coroutine refreshed the same credential get that
result instead of spending the refresh token a second time.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Union

from copilot_auth.auth.refresher import TokenRefresher
from copilot_auth.auth.validator import is_expired, needs_refresh, now_ms
from copilot_auth.exceptions import NotAuthenticated, ReauthenticationRequired
from copilot_auth.models import CredentialKind, OAuthCredential, PATCredential, TokenResult
from copilot_auth.provider import COPILOT_PROVIDER_NAME

logger = logging.getLogger(__name__)


class AuthOrchestrator:
    """Return usable access tokens for stored credentials.

    Args:
        refresher: The :class:`~copilot_auth.auth.refresher.TokenRefresher`
            to use; a default instance is created when omitted.
        clock: Wall clock in ms since the epoch.

    Example::

        orchestrator = AuthOrchestrator()
        result = await orchestrator.get_valid_access_token(credential)
        if result.changed:
            store.write_credential(result.updated)
    """

    def __init__(
        self,
        refresher: Optional[TokenRefresher] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._refresher = refresher or TokenRefresher()
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        # key -> (refresh token that was spent, credential it produced)
        self._refreshed: dict[str, tuple[str, OAuthCredential]] = {}

    @asynccontextmanager
    async def refresh_lock(self, key: str) -> AsyncIterator[None]:
        """Hold the refresh lock for *key*; released on every exit path."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        async with lock:
            yield

    async def get_valid_access_token(
        self,
        credential: Union[OAuthCredential, PATCredential],
        key: str = COPILOT_PROVIDER_NAME,
    ) -> TokenResult:
        """Return a bearer token for *credential*, refreshing it if needed.

        Args:
            credential: The stored credential. It is not modified.
            key: Identity of the credential for refresh serialisation,
                usually the provider name.

        Returns:
            A :class:`~copilot_auth.models.TokenResult`. ``updated`` is set
            only when a refresh happened.

        Raises:
            NotAuthenticated: No access token has been stored.
            ReauthenticationRequired: The token expired and there is no
                refresh token.
            NetworkError: The refresh request could not be sent.
            AuthServerError: The server rejected the refresh.
        """
        if not credential.access_token:
            raise NotAuthenticated(
                "No access token available. Please authenticate first."
            )
        if credential.kind is CredentialKind.PAT:
            return TokenResult(token=credential.access_token)

        assert isinstance(credential, OAuthCredential)
        now = self._clock()
        if not needs_refresh(credential, now):
            return TokenResult(token=credential.access_token)
        if not credential.refresh_token:
            raise ReauthenticationRequired(
                "Access token expired and no refresh token available. "
                "Please re-authenticate."
            )

        async with self.refresh_lock(key):
            reused = self._recent_refresh(key, credential.refresh_token)
            if reused is not None:
                logger.debug("Reusing refresh completed by a concurrent request for %s", key)
                return TokenResult(token=reused.access_token or "", updated=reused)

            token = await self._refresher.refresh(
                credential.refresh_token, credential.client_id
            )
            updated = credential.with_refreshed(token, self._clock())
            self._refreshed[key] = (credential.refresh_token, updated)
            logger.info("Refreshed access token for %s", key)
            return TokenResult(token=token.access_token, updated=updated)

    def _recent_refresh(self, key: str, refresh_token: str) -> Optional[OAuthCredential]:
        entry = self._refreshed.get(key)
        if entry is None:
            return None
        spent, updated = entry
        if spent != refresh_token or is_expired(updated.expires_at, self._clock()):
            return None
        return updated
