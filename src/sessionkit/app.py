"""Typer application and CLI entry point for sessionkit.

This module builds the top-level Typer app, registers the session commands
(``login``, ``logout``, ``status``, ``whoami``, ``request``) and the
``config`` group, and installs output and logging from the global flags.

:func:`main` is the console-script entry point declared in
``pyproject.toml``.  A :class:`~sessionkit.exceptions.SessionKitError` that
escapes a command exits with its ``exit_code``; any other exception is
written to a crash log under the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.logging import RichHandler

from sessionkit import __version__
from sessionkit.commands.config import config_app
from sessionkit.commands.session import (
    login_command,
    logout_command,
    register_command,
    request_command,
    status_command,
    whoami_command,
)
from sessionkit.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="sessionkit",
    help="Session-aware HTTP client with automatic token refresh.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("register")(register_command)
app.command("login")(login_command)
app.command("logout")(logout_command)
app.command("status")(status_command)
app.command("whoami")(whoami_command)
app.command("request")(request_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"sessionkit {__version__}")
        raise typer.Exit()


def _configure_logging(output: Any, verbose: bool) -> None:  # noqa: ANN401
    """Send ``sessionkit.*`` log records to stderr through Rich."""
    logger = logging.getLogger("sessionkit")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(
        console=output.stderr_console,
        show_time=False,
        show_path=False,
        markup=False,
    )
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


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
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-b", help="API base URL (overrides SESSIONKIT_BASE_URL)."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~sessionkit.output.OutputManager` and the
    log handler, and stores ``base_url`` in ``ctx.obj`` for the commands.
    """
    from sessionkit.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    _configure_logging(output, verbose)

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log() -> str:
    """Write the current traceback to the data directory and return its path."""
    from sessionkit.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``sessionkit`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from sessionkit.exceptions import SessionKitError
        from sessionkit.output import error

        if isinstance(exc, SessionKitError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
