"""Terminal output for the grantclient CLI.

stdout carries data only: the printed grant, a decoded JSON body, or the
undecoded bytes of a streamed response. Status lines, warnings, errors and
log records go to stderr, so ``grantclient request ... > body.json`` never
mixes diagnostics into the file.

Rich rendering is used when stdout is a colour terminal. ``NO_COLOR``,
``TERM=dumb`` and ``--no-color`` switch to plain text.

:class:`OutputManager` is created once in
:func:`~grantclient.app.main_callback` and installed with
:func:`set_output`; commands reach it through :func:`get_output`.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.text import Text

from grantclient.models import Grant


class OutputFormat(str, Enum):
    """``AUTO`` resolves to ``RICH`` on a colour TTY, ``PLAIN`` otherwise."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Route CLI output to the right stream.

    Args:
        format: Rendering for data written to stdout.
        no_color: Disable colour and styling on both streams.
        quiet: Drop HTTP status lines.
            Warnings and errors are always shown.
        verbose: Let DEBUG log records through (see :meth:`configure_logging`).
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
        self._format = _resolve_format(format, self._no_color)

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=self._format is OutputFormat.RICH,
            highlight=False,
        )
        self._stderr = Console(
            file=sys.stderr,
            no_color=self._no_color,
            stderr=True,
            highlight=False,
        )

    @property
    def format(self) -> OutputFormat:
        return self._format

    def configure_logging(self) -> None:
        """Render library log records on stderr through Rich.

        DEBUG with ``--verbose``, otherwise WARNING. Replaces any handlers
        installed by an earlier call.
        """
        handler = RichHandler(console=self._stderr, show_path=False, markup=False)
        logging.basicConfig(
            level=logging.DEBUG if self._verbose else logging.WARNING,
            format="%(message)s",
            handlers=[handler],
            force=True,
        )

    # ------------------------------------------------------------------ #
    # stdout
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Render a decoded JSON value. ``None`` (an empty body) prints nothing."""
        if data is None:
            return
        if self._format is OutputFormat.JSON:
            self.print_data(_to_json(data))
        elif self._format is OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self.print_data(line)
        elif isinstance(data, (dict, list)):
            self._stdout.print(Syntax(_to_json(data), "json", theme="monokai", word_wrap=True))
        else:
            self._stdout.print(Text(str(data)))

    def print_grant(self, grant: Grant) -> None:
        """Render a grant, leaving out the fields the provider did not send."""
        self.format_response(grant.model_dump(mode="json", exclude_none=True))

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def write_bytes(self, chunk: bytes) -> None:
        """Write a chunk of a response body to stdout as-is."""
        sys.stdout.flush()
        sys.stdout.buffer.write(chunk)
        sys.stdout.buffer.flush()

    # ------------------------------------------------------------------ #
    # stderr
    # ------------------------------------------------------------------ #

    def status_line(self, status_code: int, reason: str = "") -> None:
        """Report the status of a streamed response, e.g. ``HTTP 404 Not Found``."""
        style = "green" if 200 <= status_code < 300 else "yellow"
        self._emit(f"{status_code} {reason}".rstrip(), label="HTTP", style=style, optional=True)

    def warning(self, message: str) -> None:
        self._emit(message, label="Warning:", style="yellow")

    def error(self, message: str) -> None:
        self._emit(message, label="Error:", style="bold red")

    def _emit(
        self,
        message: str,
        label: Optional[str] = None,
        style: Optional[str] = None,
        optional: bool = False,
    ) -> None:
        if optional and self._quiet:
            return
        if self._no_color:
            line = f"{label} {message}" if label else message
            print(line, file=sys.stderr, flush=True)
            return
        # Text, not markup: server bodies in error messages may contain brackets.
        text = Text.assemble((label, style or ""), " ", message) if label else Text(message)
        self._stderr.print(text)


def _resolve_format(requested: OutputFormat, no_color: bool) -> OutputFormat:
    if requested is not OutputFormat.AUTO:
        return requested
    return OutputFormat.RICH if _is_tty() and not no_color else OutputFormat.PLAIN


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _plain_lines(data: Any) -> Iterator[str]:
    """Tab-separated lines: ``key<TAB>value`` for objects, one row per array item."""
    if isinstance(data, dict):
        for key, value in data.items():
            yield f"{key}\t{value}"
    elif isinstance(data, list):
        for item in data:
            if isinstance(item, dict):
                yield "\t".join(str(value) for value in item.values())
            else:
                yield str(item)
    else:
        yield str(data)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set to any value, or ``TERM=dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Process-wide instance
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Drop the installed instance (tests swap stdout/stderr between runs)."""
    global _output
    _output = None


def error(message: str) -> None:
    get_output().error(message)


def warning(message: str) -> None:
    get_output().warning(message)
