"""Request command -- perform one authenticated HTTP request.

Implements ``grantclient request``. The grant comes either from a
password exchange (``--username``) or from an access token obtained
elsewhere (``--token-source``).

In the default JSON mode the decoded body is printed and non-2xx answers
fail with the matching exit code. With ``--raw`` the body is streamed to
stdout untouched and the status line goes to stderr.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
import typer

from grantclient.client import AuthenticatedClient
from grantclient.config import load_provider_config, resolve_credential
from grantclient.exceptions import (
    GrantClientError,
    InvalidUsageError,
    ProtocolError,
    TransportError,
)
from grantclient.exit_codes import EXIT_NOT_FOUND, EXIT_REQUEST_FAILURE, EXIT_SUCCESS
from grantclient.models import Grant, RequestSpec, ResponseMode
from grantclient.output import error, get_output


def request_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Absolute URL of the protected resource."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Extra header as 'Name: value' (repeatable)."
    ),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body."),
    raw: bool = typer.Option(False, "--raw", help="Stream the body without decoding it."),
    username: Optional[str] = typer.Option(
        None, "--username", "-u", help="User to authenticate as."
    ),
    password_source: str = typer.Option(
        "prompt",
        "--password-source",
        "-p",
        help="Password source: env:VAR, file:/path, or prompt.",
    ),
    token_source: Optional[str] = typer.Option(
        None,
        "--token-source",
        help="Use an existing access token from env:VAR or file:/path instead of logging in.",
    ),
) -> None:
    """Send METHOD URL with a bearer token and print the response.

    Raises:
        typer.Exit: With the exit code of the failure (see
            :mod:`grantclient.exit_codes`).

    Example::

        grantclient request http://localhost:8080/auth/admin/realms/example-realm/applications -u lucy
    """
    try:
        spec = RequestSpec(
            url=url,
            method=method,
            headers=_parse_headers(header or []),
            content=data,
            response_mode=ResponseMode.RAW if raw else ResponseMode.JSON,
        )
        config = load_provider_config(ctx.obj.get("config"))
        kwargs: dict[str, Any] = {}
        if token_source is not None:
            token = resolve_credential(token_source)
            if not token:
                raise InvalidUsageError("Token source yielded an empty token")
            kwargs["grant"] = Grant(access_token=token)
        elif username is not None:
            kwargs["username"] = username
            kwargs["password"] = resolve_credential(password_source)
        else:
            raise InvalidUsageError("Pass --username or --token-source")
        code = asyncio.run(_perform(AuthenticatedClient(config, **kwargs), spec))
    except GrantClientError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if code != EXIT_SUCCESS:
        raise typer.Exit(code=code)


async def _perform(client: AuthenticatedClient, spec: RequestSpec) -> int:
    output = get_output()
    async with client:
        result = await client.request(spec)
        if spec.response_mode is ResponseMode.JSON:
            output.format_response(result)
            return EXIT_SUCCESS

        try:
            output.status_line(result.status_code, result.reason_phrase or "")
            async for chunk in result.aiter_bytes():
                output.write_bytes(chunk)
        except httpx.DecodingError as exc:
            raise ProtocolError(f"Response body could not be decoded: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Reading response body failed: {exc}") from exc
        finally:
            await result.aclose()

    if result.status_code == 404:
        return EXIT_NOT_FOUND
    if result.is_error:
        return EXIT_REQUEST_FAILURE
    return EXIT_SUCCESS


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise InvalidUsageError(f"Invalid header '{value}', expected 'Name: value'")
        headers[name.strip()] = content.strip()
    return headers
