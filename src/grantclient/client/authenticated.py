"""Client facade -- holds the current grant and issues authenticated requests.

:class:`AuthenticatedClient` composes
:class:`~grantclient.auth.grants.GrantManager` and
:class:`~grantclient.client.executor.AuthenticatedRequestExecutor`. Before
every request it makes sure the held grant is usable, swapping in a renewed
grant when it is not, then hands the request to the executor.

Concurrent callers share a single in-flight renewal: when several requests
start before any grant exists (or while the held one is expired), exactly
one token exchange is issued and every caller receives its outcome.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Union

import httpx

from grantclient.auth.grants import Clock, GrantManager, utcnow
from grantclient.client.executor import AuthenticatedRequestExecutor, SetupHook
from grantclient.config import load_provider_config
from grantclient.exceptions import GrantError, InvalidUsageError
from grantclient.models import Credentials, Grant, ProviderConfig, RequestSpec

logger = logging.getLogger(__name__)


class AuthenticatedClient:
    """Perform HTTP requests that always carry a valid bearer token.

    The client authenticates either on behalf of a user (``username`` and
    ``password``) or with a grant obtained elsewhere. When both are given
    the grant is used first; the credentials are kept for re-authentication
    once it can no longer be refreshed.

    Args:
        config: Identity provider settings. Loaded with
            :func:`~grantclient.config.load_provider_config` when ``None``.
        username: End-user name for the password grant.
        password: End-user password for the password grant.
        grant: A pre-obtained :class:`~grantclient.models.Grant`, or the
            raw token-endpoint JSON it was issued as.
        http_client: Optional shared :class:`httpx.AsyncClient`. When
            omitted the client creates (and later closes) its own.
        clock: Returns the current aware datetime; injectable for tests.

    Example::

        async with AuthenticatedClient(username="bob", password="tacos") as client:
            apps = await client.get(
                "http://localhost:8080/auth/admin/realms/example-realm/applications",
                response_mode=ResponseMode.JSON,
            )
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        grant: Union[Grant, dict[str, Any], None] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        if grant is None and username is None:
            raise InvalidUsageError("Either username/password or a grant is required")
        if username is not None and password is None:
            raise InvalidUsageError(f"No password given for user '{username}'")

        self._config = config if config is not None else load_provider_config()
        self._clock = clock or utcnow

        self._credentials: Optional[Credentials] = None
        if username is not None and password is not None:
            self._credentials = Credentials.for_user(self._config, username, password)

        if isinstance(grant, dict):
            grant = Grant.from_token_response(grant, self._clock())
        self._grant: Optional[Grant] = grant

        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
        )
        self._grants = GrantManager(self._config, self._http, self._clock)
        self._executor = AuthenticatedRequestExecutor(self._http)
        self._pending: Optional[asyncio.Future[Grant]] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AuthenticatedClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------ #
    # Grant handling
    # ------------------------------------------------------------------ #

    @property
    def grant(self) -> Optional[Grant]:
        """The grant currently held, or ``None`` before the first acquisition."""
        return self._grant

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def ensure_grant(self) -> Grant:
        """Return a usable grant, acquiring or renewing it when needed.

        A usable held grant is returned without any I/O. Otherwise the
        renewal is shared by every concurrent caller.

        Raises:
            GrantError: If acquisition or renewal fails.
            ProtocolError: If the token endpoint answers with malformed JSON.
            TransportError: If the identity provider cannot be reached.
        """
        held = self._grant
        if held is not None and self._grants.is_usable(held):
            return held

        pending = self._pending
        if pending is None:
            pending = asyncio.ensure_future(self._renew())
            self._pending = pending
            pending.add_done_callback(self._release)
        # Abandoning one waiter must not cancel the exchange for the others.
        return await asyncio.shield(pending)

    async def obtain_grant_directly(self) -> Grant:
        """Exchange the configured credentials for a new grant and hold it.

        Raises:
            GrantError: If no credentials were configured, or the provider
                rejects them.
        """
        if self._credentials is None:
            raise GrantError("No credentials configured to obtain a grant")
        grant = await self._grants.obtain_directly(self._credentials)
        self._grant = grant
        return grant

    async def _renew(self) -> Grant:
        grant = await self._grants.ensure_grant(self._grant, self._credentials)
        if grant is not self._grant:
            logger.debug("Replacing held grant")
        self._grant = grant
        return grant

    def _release(self, future: asyncio.Future[Grant]) -> None:
        if self._pending is future:
            self._pending = None
        if not future.cancelled():
            # Waiters re-raise the error themselves; mark it retrieved.
            future.exception()

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def request(
        self,
        spec: Union[RequestSpec, str],
        setup: Optional[SetupHook] = None,
    ) -> Any:
        """Ensure a usable grant, then perform *spec* with it.

        Args:
            spec: The request to send, or a bare URL for a ``GET`` in raw mode.
            setup: Optional synchronous hook that may alter the outgoing
                :class:`httpx.Request` after the token is injected.

        Returns:
            See :meth:`AuthenticatedRequestExecutor.execute`.
        """
        spec = RequestSpec.coerce(spec)
        grant = await self.ensure_grant()
        return await self._executor.execute(spec, grant, setup)

    async def get(self, url: str, **kwargs: Any) -> Any:
        """Send a GET request; keyword arguments populate :class:`RequestSpec`."""
        return await self._verb("GET", url, kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        """Send a POST request; keyword arguments populate :class:`RequestSpec`."""
        return await self._verb("POST", url, kwargs)

    async def put(self, url: str, **kwargs: Any) -> Any:
        """Send a PUT request; keyword arguments populate :class:`RequestSpec`."""
        return await self._verb("PUT", url, kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Any:
        """Send a PATCH request; keyword arguments populate :class:`RequestSpec`."""
        return await self._verb("PATCH", url, kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        """Send a DELETE request; keyword arguments populate :class:`RequestSpec`."""
        return await self._verb("DELETE", url, kwargs)

    async def _verb(self, method: str, url: str, kwargs: dict[str, Any]) -> Any:
        setup = kwargs.pop("setup", None)
        return await self.request(RequestSpec(url=url, method=method, **kwargs), setup)
