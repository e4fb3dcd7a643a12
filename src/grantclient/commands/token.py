"""Token command -- obtain a grant with the password flow and print it.

Implements ``grantclient token``. Useful to check that a realm, client
and user are configured correctly, or to hand an access token to another
tool.
"""

from __future__ import annotations

import asyncio

import typer

from grantclient.client import AuthenticatedClient
from grantclient.config import load_provider_config, resolve_credential
from grantclient.exceptions import GrantClientError
from grantclient.models import Grant, ProviderConfig
from grantclient.output import error, get_output, warning


def token_command(
    ctx: typer.Context,
    username: str = typer.Option(..., "--username", "-u", help="User to authenticate as."),
    password_source: str = typer.Option(
        "prompt",
        "--password-source",
        "-p",
        help="Password source: env:VAR, file:/path, or prompt.",
    ),
) -> None:
    """Obtain a grant for USERNAME and print it to stdout.

    Raises:
        typer.Exit: With the exit code of the failure (see
            :mod:`grantclient.exit_codes`).

    Example::

        grantclient --json token -u lucy -p env:LUCY_PASSWORD
    """
    try:
        config = load_provider_config(ctx.obj.get("config"))
        password = resolve_credential(password_source)
        grant = asyncio.run(_obtain(config, username, password))
    except GrantClientError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if grant.expires_at is None:
        warning("Provider reported no expiry; the grant is treated as never expiring")
    get_output().print_grant(grant)


async def _obtain(config: ProviderConfig, username: str, password: str) -> Grant:
    async with AuthenticatedClient(config, username=username, password=password) as client:
        return await client.obtain_grant_directly()
