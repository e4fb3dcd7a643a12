"""HTTP client module for grantclient.

Classes:
    :class:`AuthenticatedClient` -- facade holding the current grant; the
        main entry point for callers.
    :class:`AuthenticatedRequestExecutor` -- sends one request with a
        grant applied and interprets the response.

Example::

    from grantclient.client import AuthenticatedClient

    async with AuthenticatedClient(config, username="lucy", password="lucy") as client:
        response = await client.request("http://localhost:8080/resource")
        body = await response.aread()
"""

from grantclient.client.authenticated import AuthenticatedClient
from grantclient.client.executor import AuthenticatedRequestExecutor

__all__ = ["AuthenticatedClient", "AuthenticatedRequestExecutor"]
