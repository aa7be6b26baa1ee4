"""Authentication core: device flow, token refresh, expiry rules, orchestration.

The main entry points are:

- :class:`DeviceAuthorizer` -- runs the OAuth2 device authorization grant to
  mint the initial credential.
- :class:`TokenRefresher` -- exchanges a refresh token for a new token set.
- :func:`is_expired` / :func:`needs_refresh` -- expiry rules.
- :class:`AuthOrchestrator` -- request-time facade returning a usable token.
- :class:`AccessVerifier` -- probes whether a token has Copilot access.

Typical usage::

    from copilot_auth.auth import AuthOrchestrator

    orchestrator = AuthOrchestrator()
    result = await orchestrator.get_valid_access_token(credential)
"""

from copilot_auth.auth.device_flow import (
    DeviceAuthorizer,
    DeviceFlow,
    FlowState,
    apply_poll_response,
)
from copilot_auth.auth.orchestrator import AuthOrchestrator
from copilot_auth.auth.probe import AccessVerifier
from copilot_auth.auth.refresher import TokenRefresher
from copilot_auth.auth.validator import is_expired, needs_refresh

__all__ = [
    "AccessVerifier",
    "AuthOrchestrator",
    "DeviceAuthorizer",
    "DeviceFlow",
    "FlowState",
    "TokenRefresher",
    "apply_poll_response",
    "is_expired",
    "needs_refresh",
]
