"""Command-line output: response data on stdout, everything else on stderr.

``sessionkit request ... | jq`` must only ever see the response body, so
status lines (``HTTP 200 OK``), session notices, warnings and errors are
written to stderr.  Bodies are rendered as indented JSON (``--json``),
tab-separated text (``--plain``, or any non-TTY), or highlighted with Rich
on an interactive terminal.  ``NO_COLOR`` and ``TERM=dumb`` turn colour off.

The CLI callback builds one :class:`OutputManager` and installs it with
:func:`set_output`; commands use the module-level helpers.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, NamedTuple, Optional

from rich.console import Console
from rich.syntax import Syntax


class OutputFormat(str, Enum):
    """Body rendering. ``AUTO`` picks ``RICH`` on a colour TTY, else ``PLAIN``."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class _Level(NamedTuple):
    prefix: str
    style: Optional[str]
    quiet_hides: bool
    verbose_only: bool = False


_LEVELS: dict[str, _Level] = {
    "info": _Level("", None, True),
    "success": _Level("", "green", True),
    "suggest": _Level("→ ", "dim", True),
    "debug": _Level("[debug] ", "dim", True, verbose_only=True),
    "warning": _Level("Warning: ", "yellow", False),
    "error": _Level("Error: ", "bold red", False),
}


class OutputManager:
    """Holds the output preferences and the stdout/stderr Rich consoles.

    Args:
        format: Body rendering; ``AUTO`` is resolved against the terminal.
        no_color: Disable colour.
        quiet: Hide info, success and suggestion lines.  Warnings and
            errors are always shown.
        verbose: Show debug lines.
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
        if format == OutputFormat.AUTO:
            rich_ok = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich_ok else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """The stderr console; the CLI log handler writes through it too."""
        return self._stderr

    # -- stdout ------------------------------------------------------- #

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def format_response(self, data: Any, content_type: str = "application/json") -> None:
        """Write a decoded response body to stdout."""
        if self._format == OutputFormat.JSON:
            self._render_json(data)
        elif self._format == OutputFormat.PLAIN:
            self._render_plain(data)
        else:
            self._render_rich(data, content_type)

    def _render_json(self, data: Any) -> None:
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                self.print_data(data)
                return
        self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def _render_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            lines = [f"{key}\t{value}" for key, value in data.items()]
        elif isinstance(data, list):
            lines = [
                "\t".join(str(v) for v in item.values()) if isinstance(item, dict) else str(item)
                for item in data
            ]
        else:
            lines = [str(data)]
        for line in lines:
            self.print_data(line)

    def _render_rich(self, data: Any, content_type: str) -> None:
        if isinstance(data, (dict, list)):
            text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
            self._stdout.print(Syntax(text, "json", theme="monokai", word_wrap=True))
        elif isinstance(data, str) and "html" in content_type:
            self._stdout.print(Syntax(data, "html", theme="monokai", word_wrap=True))
        else:
            self._stdout.print(str(data), markup=False)

    # -- stderr ------------------------------------------------------- #

    def emit(self, level: str, message: str) -> None:
        """Write *message* to stderr at *level* (a key of ``_LEVELS``)."""
        rule = _LEVELS[level]
        if rule.verbose_only and not self._verbose:
            return
        if rule.quiet_hides and self._quiet:
            return
        line = f"{rule.prefix}{message}"
        if self._no_color:
            print(line, file=sys.stderr, flush=True)
        else:
            self._stderr.print(line, style=rule.style, markup=False)

    def info(self, message: str) -> None:
        self.emit("info", message)

    def success(self, message: str) -> None:
        self.emit("success", message)

    def suggest(self, message: str) -> None:
        self.emit("suggest", message)

    def debug(self, message: str) -> None:
        self.emit("debug", message)

    def warning(self, message: str) -> None:
        self.emit("warning", message)

    def error(self, message: str) -> None:
        self.emit("error", message)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (any value) or ``TERM=dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def format_response(data: Any, content_type: str = "application/json") -> None:
    get_output().format_response(data, content_type)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)
