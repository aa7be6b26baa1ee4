"""Terminal output for the copilot-auth commands.

Two streams, never mixed:

* **stdout** carries what a script wants to capture and nothing else: the
  bearer token printed by ``token`` and the entry listing printed by
  ``list``. ``TOKEN=$(copilot-auth token)`` must stay clean.
* **stderr** carries everything addressed to the person at the keyboard:
  the device code banner, polling progress, warnings, errors and the
  suggested next command. The logging handler installed by
  :func:`~copilot_auth.app.main_callback` writes here too.

Styling comes from Rich when stdout is a terminal. ``--no-color``,
``NO_COLOR`` and ``TERM=dumb`` all drop to undecorated text, which is also
what the CLI tests assert against.

:class:`OutputManager` is built once per invocation by the root callback and
installed with :func:`set_output`; the commands call the module-level
shortcuts (:func:`info`, :func:`warning`, ...) instead of passing it around.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

_BANNER_TITLE = "GitHub Copilot Authentication"


class OutputFormat(str, Enum):
    """How ``list`` and ``token --json`` render their data.

    ``AUTO`` picks ``RICH`` for an interactive, colour-capable stdout and
    ``PLAIN`` otherwise.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Per-invocation output settings plus the two Rich consoles.

    Args:
        format: Data format; ``AUTO`` is resolved here from the terminal.
        no_color: Print undecorated text on both streams.
        quiet: Hide info, success, progress and suggestions. Warnings,
            errors and the device code banner are always shown.
        verbose: Show :meth:`debug` messages.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format is OutputFormat.AUTO:
            rich_ok = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich_ok else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format is OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def stderr_console(self) -> Console:
        """Console for diagnostics; the log handler renders through it."""
        return self._stderr

    # --- stdout ---

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_records(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print one record per row: a Rich table, a JSON array or TSV lines."""
        if self._format is OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))
            return
        if self._format is OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
            return

        table = Table(title=title, header_style="bold cyan")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*row)
        self._stdout.print(table)

    # --- stderr ---

    def _emit(self, plain: str, markup: str, optional: bool = True) -> None:
        if optional and self._quiet:
            return
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup)

    def info(self, message: str) -> None:
        self._emit(message, message)

    def success(self, message: str) -> None:
        self._emit(message, f"[bold green]✓ {message}[/bold green]")

    def progress(self, message: str) -> None:
        """Status line while a login step is in flight."""
        self._emit(message, f"[dim]{message}[/dim]")

    def suggest(self, message: str) -> None:
        """Point at the command to run next, e.g. ``copilot-auth login``."""
        self._emit(f"→ {message}", f"[dim]→ {message}[/dim]")

    def warning(self, message: str) -> None:
        self._emit(
            f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}", optional=False
        )

    def error(self, message: str) -> None:
        self._emit(
            f"Error: {message}", f"[bold red]Error:[/bold red] {message}", optional=False
        )

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]", optional=False)

    def device_code(self, verification_uri: str, user_code: str) -> None:
        """Tell the user where to go and which code to type.

        Shown even with ``--quiet``: login cannot finish without it.
        """
        if self._no_color:
            print(
                f"\n{_BANNER_TITLE}\n"
                f"Step 1: Visit {verification_uri}\n"
                f"Step 2: Enter code {user_code}\n\n"
                "Waiting for authorization...",
                file=sys.stderr,
                flush=True,
            )
            return
        body = (
            "[bold]Step 1:[/bold] Open this URL in any browser:\n\n"
            f"  [cyan]{verification_uri}[/cyan]\n\n"
            "[bold]Step 2:[/bold] Enter the code:\n\n"
            f"  [bold yellow]{user_code}[/bold yellow]"
        )
        self._stderr.print(Panel(body, title=_BANNER_TITLE, border_style="bold cyan"))
        self._stderr.print("[dim]Waiting for authorization...[/dim]")


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` set to anything, or ``TERM=dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# --- process-wide instance ---

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """The installed manager, or a default one when no callback has run."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager so the next call builds a fresh one.

    Tests need this: a manager keeps the streams it saw at construction, and
    CliRunner swaps those streams per invocation.
    """
    global _output
    _output = None


def print_data(text: str) -> None:
    get_output().print_data(text)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def progress(message: str) -> None:
    get_output().progress(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)


def format_any(data: Any) -> str:
    """JSON text for ``--json`` output."""
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)
