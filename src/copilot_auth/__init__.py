"""copilot-auth -- GitHub Copilot authentication for a local model router.

This package authenticates the router against the GitHub Copilot API using
the OAuth2 device-authorization grant (or a Personal Access Token) and keeps
the resulting credential usable across process restarts.

Typical workflow::

    copilot-auth login    # device flow, or PAT when no client id is configured
    copilot-auth list     # show stored authentication entries
    copilot-auth token    # print a valid access token, refreshing if needed

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for credentials, wire payloads and the router config.
    config: Config directory resolution, atomic writes and the config store.
    provider: Copilot provider entry helpers.
    middleware: Request-time token injection.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
