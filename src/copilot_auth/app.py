"""Typer application and CLI entry point for copilot-auth.

This module wires together the top-level Typer application and registers the
built-in commands (``login``, ``list``, ``token``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands and
invokes the Typer app. Unhandled exceptions are written to a crash log under
the config directory.

See Also:
    :mod:`copilot_auth.commands.auth`: The command implementations.
    :mod:`copilot_auth.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer
from rich.logging import RichHandler

from copilot_auth import __version__
from copilot_auth.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="copilot-auth",
    help="Authenticate a local model router with GitHub Copilot.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"copilot-auth {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every command.

    Initialises the global :class:`~copilot_auth.output.OutputManager` from
    CLI flags and routes library logging to stderr.
    """
    from copilot_auth.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    _configure_logging(output.stderr_console, verbose)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _configure_logging(console: Any, verbose: bool) -> None:
    """Send ``copilot_auth`` log records to the diagnostics console.

    Warnings and errors are always shown; ``--verbose`` lowers the level to
    DEBUG.
    """
    package_logger = logging.getLogger("copilot_auth")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    handler = RichHandler(console=console, show_path=verbose, show_time=verbose)
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly while polling."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from copilot_auth.config import get_logs_dir

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = get_logs_dir() / f"copilot-auth-crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def register_commands() -> None:
    """Attach the built-in commands to :data:`app`."""
    from copilot_auth.commands.auth import auth_list, auth_login, auth_token

    app.command("login")(auth_login)
    app.command("list")(auth_list)
    app.command("token")(auth_token)


def main() -> None:
    """CLI entry point invoked by the ``copilot-auth`` console script.

    Unhandled :class:`~copilot_auth.exceptions.CopilotAuthError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from copilot_auth.exceptions import CopilotAuthError
        from copilot_auth.output import error

        if isinstance(exc, CopilotAuthError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
