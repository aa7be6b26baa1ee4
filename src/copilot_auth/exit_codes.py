"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~copilot_auth.exceptions.CopilotAuthError` subclass.
Setup scripts can inspect the exit code to decide whether to retry (network
trouble) or to re-run the login flow (credential problems).

Example::

    $ copilot-auth token
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the stored credential must be re-created
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required input."""

EXIT_AUTH_FAILURE = 3
"""Authorization failed or the stored credential cannot be used."""

EXIT_SERVER_ERROR = 5
"""The authorization server returned a structured error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PERSISTENCE_ERROR = 8
"""The router config file could not be written."""
