"""Exception hierarchy for copilot-auth.

All exceptions inherit from :class:`CopilotAuthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`copilot_auth.exit_codes`.
The top-level error handler in :func:`copilot_auth.app.main` catches
``CopilotAuthError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    CopilotAuthError (exit 1)
    +-- NetworkError              (exit 6)
    +-- AuthServerError           (exit 5)
    +-- DeviceFlowError           (exit 3)
    |   +-- DeviceCodeExpired
    |   +-- AuthorizationDenied
    |   +-- AuthorizationTimeout
    |   +-- AuthorizationCancelled
    +-- CredentialError           (exit 3)
    |   +-- NotAuthenticated
    |   +-- ReauthenticationRequired
    +-- AccessDeniedError         (exit 3)
    +-- PersistenceError          (exit 8)
    +-- ConfigError               (exit 1)
"""

from __future__ import annotations

from copilot_auth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_PERSISTENCE_ERROR,
    EXIT_SERVER_ERROR,
)


class CopilotAuthError(Exception):
    """Base exception for all copilot-auth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`copilot_auth.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class NetworkError(CopilotAuthError):
    """Raised on transport-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class AuthServerError(CopilotAuthError):
    """Raised when the authorization or resource server reports an error.

    Args:
        message: Human-readable error description.
        status_code: HTTP status of the offending response, if known.
        error: The OAuth ``error`` code from the response body, if any.
        description: The server's ``error_description``, if any.
    """

    exit_code = EXIT_SERVER_ERROR

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
        description: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.description = description


class DeviceFlowError(CopilotAuthError):
    """Base class for terminal outcomes of the device authorization flow."""

    exit_code = EXIT_AUTH_FAILURE


class DeviceCodeExpired(DeviceFlowError):
    """Raised when the server reports ``expired_token`` while polling."""


class AuthorizationDenied(DeviceFlowError):
    """Raised when the user declines the authorization request (``access_denied``)."""


class AuthorizationTimeout(DeviceFlowError):
    """Raised when polling exceeds the overall time ceiling."""


class AuthorizationCancelled(DeviceFlowError):
    """Raised when the caller's cancellation signal is set between poll attempts."""


class CredentialError(CopilotAuthError):
    """Base class for stored-credential states that require re-running setup."""

    exit_code = EXIT_AUTH_FAILURE


class NotAuthenticated(CredentialError):
    """Raised when no access token has been stored yet."""


class ReauthenticationRequired(CredentialError):
    """Raised when the access token expired and no refresh token is available."""


class AccessDeniedError(CopilotAuthError):
    """Raised when a token is accepted syntactically but has no Copilot access."""

    exit_code = EXIT_AUTH_FAILURE


class PersistenceError(CopilotAuthError):
    """Raised when the router config file cannot be written."""

    exit_code = EXIT_PERSISTENCE_ERROR


class ConfigError(CopilotAuthError):
    """Raised for configuration problems (invalid JSON, malformed credential entries)."""

    exit_code = EXIT_GENERIC_FAILURE
