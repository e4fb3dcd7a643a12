"""Typer application and the ``grantclient`` console script.

:func:`main` is the entry point declared in ``pyproject.toml``. The root
callback turns the global flags into an
:class:`~grantclient.output.OutputManager` and logging setup before any
sub-command runs; the sub-commands themselves live in
:mod:`grantclient.commands`.

Exit status: ``0`` on success, the failing error's ``exit_code`` for a
:class:`~grantclient.exceptions.GrantClientError` (see
:mod:`grantclient.exit_codes`), ``130`` on Ctrl-C, and ``1`` for anything
unexpected, in which case the traceback is saved under the data directory.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from grantclient import __version__
from grantclient.exit_codes import EXIT_GENERIC_FAILURE

EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="grantclient",
    help="Perform HTTP requests authenticated against an OAuth2/OIDC identity provider.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"grantclient {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to keycloak.json (default: discovered)."
    ),
    json_output: bool = typer.Option(False, "--json", help="Print data as JSON."),
    plain_output: bool = typer.Option(False, "--plain", help="Print data as tab-separated text."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide status lines."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug log records."),
) -> None:
    """Set up output and logging, and remember ``--config`` for the sub-command."""
    from grantclient.output import OutputFormat, OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = OutputFormat.AUTO

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    output.configure_logging()
    set_output(output)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


def register_commands() -> None:
    """Attach ``token`` and ``request`` to :data:`app`. Safe to call repeatedly."""
    from grantclient.commands.request import request_command
    from grantclient.commands.token import token_command

    present = {command.name for command in app.registered_commands}
    for name, callback in (("token", token_command), ("request", request_command)):
        if name not in present:
            app.command(name)(callback)


def _on_sigint(signum: int, frame: Any) -> None:  # noqa: ANN401
    sys.stderr.write("\nCancelled.\n")
    sys.exit(EXIT_INTERRUPTED)


def _save_traceback() -> Path:
    """Write the current exception's traceback to the data directory."""
    from grantclient.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    path.write_text(traceback.format_exc(), encoding="utf-8")
    return path


def main() -> None:
    """Run the CLI. Always ends in :class:`SystemExit`."""
    signal.signal(signal.SIGINT, _on_sigint)
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        from grantclient.exceptions import GrantClientError
        from grantclient.output import error

        if isinstance(exc, GrantClientError):
            error(str(exc))
            sys.exit(exc.exit_code)
        error(f"Unexpected error. Traceback saved to {_save_traceback()}")
        sys.exit(EXIT_GENERIC_FAILURE)
