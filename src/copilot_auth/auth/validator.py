"""Expiry rules for stored credentials.

OAuth access tokens are treated as expired five minutes before their real
expiry so that a token never lapses mid-request. Personal Access Tokens do
not expire under this model.
"""

from __future__ import annotations

import time
from typing import Optional, Union

from copilot_auth.models import CredentialKind, OAuthCredential, PATCredential

EXPIRY_MARGIN_MS = 5 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def is_expired(expires_at: Optional[int], now: Optional[int] = None) -> bool:
    """Return True if an access token expiring at *expires_at* must be refreshed.

    Args:
        expires_at: Expiry in ms since the epoch. ``None`` counts as expired.
        now: Current time in ms; defaults to :func:`now_ms`.
    """
    if expires_at is None:
        return True
    if now is None:
        now = now_ms()
    return now >= expires_at - EXPIRY_MARGIN_MS


def needs_refresh(
    credential: Union[OAuthCredential, PATCredential], now: Optional[int] = None
) -> bool:
    """Return True if *credential* must be refreshed before use."""
    if credential.kind is CredentialKind.PAT:
        return False
    assert isinstance(credential, OAuthCredential)
    return is_expired(credential.expires_at, now)
