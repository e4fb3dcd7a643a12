"""Grant lifecycle -- credential exchange, freshness checks and refresh.

:class:`GrantManager` is the only component that talks to the identity
provider. It keeps no grant of its own: callers pass in whatever grant they
hold and get back either the same object (still usable) or a replacement.
Holding the current grant, and serialising concurrent renewals, is the job
of :class:`~grantclient.client.authenticated.AuthenticatedClient`.

Expiry policy (clock based) is kept apart from acquisition (network bound),
so an externally supplied grant skips acquisition but still takes part in
freshness checks.
"""

from __future__ import annotations

import base64
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from grantclient.exceptions import GrantError, ProtocolError, TransportError
from grantclient.models import Credentials, Grant, ProviderConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class GrantManager:
    """Exchange credentials for grants and keep held grants usable.

    Args:
        config: Identity provider settings (endpoints and form contract).
        http_client: Shared async HTTP client used for token exchanges.
        clock: Returns the current aware datetime; injectable for tests.

    Example::

        async with httpx.AsyncClient() as http:
            manager = GrantManager(config, http)
            grant = await manager.obtain_directly(credentials)
            grant = await manager.ensure_freshness(grant, credentials)
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config
        self._http = http_client
        self._clock = clock or utcnow

    @property
    def config(self) -> ProviderConfig:
        return self._config

    # ------------------------------------------------------------------ #
    # Acquisition
    # ------------------------------------------------------------------ #

    async def obtain_directly(self, credentials: Credentials) -> Grant:
        """Exchange a username and password for a new grant.

        Performs the resource-owner password credentials grant against
        :attr:`ProviderConfig.token_endpoint`.

        Args:
            credentials: End-user login plus the client identity.

        Returns:
            A freshly issued :class:`~grantclient.models.Grant`.

        Raises:
            GrantError: If the provider answers with a non-2xx status.
            ProtocolError: If a 2xx body is not a valid token response.
            TransportError: If the provider cannot be reached.
            ConfigError: If a confidential client has no secret.
        """
        form: dict[str, str] = {
            "username": credentials.username,
            "password": credentials.password,
        }
        if self._config.grant_type:
            form["grant_type"] = self._config.grant_type

        logger.debug(
            "Requesting grant for user '%s' from %s",
            credentials.username,
            self._config.token_endpoint,
        )
        grant = await self._exchange(self._config.token_endpoint, form, credentials)
        logger.info("Obtained grant for user '%s'", credentials.username)
        return grant

    async def refresh(self, grant: Grant, credentials: Optional[Credentials] = None) -> Grant:
        """Trade the grant's refresh token for a new grant.

        When the provider does not rotate the refresh token, the previous
        one is carried over to the new grant.

        Raises:
            GrantError: If *grant* has no refresh token or the provider
                rejects it.
            ProtocolError: If a 2xx body is not a valid token response.
            TransportError: If the provider cannot be reached.
        """
        if not grant.refresh_token:
            raise GrantError("Grant has no refresh token")

        form = {"grant_type": "refresh_token", "refresh_token": grant.refresh_token}
        logger.debug("Refreshing grant at %s", self._config.refresh_endpoint)
        renewed = await self._exchange(self._config.refresh_endpoint, form, credentials)
        if renewed.refresh_token is None:
            renewed = renewed.model_copy(
                update={
                    "refresh_token": grant.refresh_token,
                    "refresh_expires_at": grant.refresh_expires_at,
                }
            )
        return renewed

    # ------------------------------------------------------------------ #
    # Freshness
    # ------------------------------------------------------------------ #

    def is_usable(self, grant: Grant) -> bool:
        """Return ``True`` while *grant* has an access token and has not expired."""
        if not grant.access_token:
            return False
        return not grant.is_expired(self._clock(), self._config.expiry_leeway)

    async def ensure_freshness(
        self, grant: Grant, credentials: Optional[Credentials] = None
    ) -> Grant:
        """Return *grant* itself if usable, otherwise a renewed replacement.

        Renewal prefers the refresh token; without one (or once it has
        expired) the user credentials are exchanged again. *grant* is never
        modified.

        Raises:
            GrantError: If the grant expired and cannot be renewed, or the
                provider rejects the renewal.
        """
        if self.is_usable(grant):
            return grant

        if grant.can_refresh(self._clock()):
            logger.debug("Grant expired, refreshing")
            return await self.refresh(grant, credentials)

        if credentials is not None:
            logger.debug("Grant expired and not refreshable, re-authenticating")
            return await self.obtain_directly(credentials)

        raise GrantError("Grant expired and cannot be renewed: no refresh token or credentials")

    async def ensure_grant(
        self, held: Optional[Grant], credentials: Optional[Credentials]
    ) -> Grant:
        """Single entry point used before every authenticated request.

        Acquires a grant when none is held, otherwise defers to
        :meth:`ensure_freshness`.

        Raises:
            GrantError: If no grant is held and no credentials were given,
                or acquisition/renewal fails.
        """
        if held is None:
            if credentials is None:
                raise GrantError("No grant held and no credentials to obtain one")
            return await self.obtain_directly(credentials)
        return await self.ensure_freshness(held, credentials)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _client_auth(
        self, form: dict[str, str], credentials: Optional[Credentials]
    ) -> dict[str, str]:
        """Apply client authentication to *form* and return extra headers.

        Confidential clients authenticate with HTTP Basic; public clients
        only identify themselves with ``client_id`` in the body.
        """
        public = credentials.public_client if credentials else self._config.public_client
        client_id = credentials.client_id if credentials else self._config.client_id

        if public or self._config.client_id_in_form:
            form["client_id"] = client_id
        if public:
            return {}

        secret = credentials.client_secret if credentials else None
        if not secret:
            secret = self._config.require_secret()
        encoded = base64.b64encode(f"{client_id}:{secret}".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}

    async def _exchange(
        self,
        url: str,
        form: dict[str, str],
        credentials: Optional[Credentials],
    ) -> Grant:
        form.update(self._config.extra_token_params)
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        headers.update(self._client_auth(form, credentials))

        try:
            response = await self._http.post(url, data=form, headers=headers)
        except httpx.DecodingError as exc:
            raise ProtocolError(f"Token response from {url} could not be decoded: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Token request to {url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            reason = response.reason_phrase or ""
            logger.warning("Token endpoint refused grant: HTTP %s %s", response.status_code, reason)
            raise GrantError(
                f"Token request failed with status {response.status_code}: {reason}".rstrip(": "),
                status_code=response.status_code,
                reason=reason,
                body=response.text,
            )

        payload = _decode_json(response)
        return Grant.from_token_response(payload, self._clock())


def _decode_json(response: httpx.Response) -> Any:
    try:
        return json.loads(response.content)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Token response is not valid JSON: {exc}") from exc
