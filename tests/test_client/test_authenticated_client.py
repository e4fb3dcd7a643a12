"""Tests for the AuthenticatedClient facade."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from grantclient.client.authenticated import AuthenticatedClient
from grantclient.exceptions import GrantError, InvalidUsageError, RequestError
from grantclient.models import Grant, RequestSpec, ResponseMode

TOKEN_URL = "http://idp.test/auth/realms/example-realm/tokens/grants/access"
REFRESH_URL = "http://idp.test/auth/realms/example-realm/tokens/refresh"
API_URL = "http://api.test/things"


def _provider(make_token, api_body=None):
    """Handler answering token calls with numbered grants and API calls with JSON."""
    issued = []

    async def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in (TOKEN_URL, REFRESH_URL):
            await asyncio.sleep(0)
            issued.append(url)
            return httpx.Response(200, json=make_token(access_token=f"access-{len(issued)}"))
        return httpx.Response(200, json=api_body if api_body is not None else {"ok": True})

    return handler


def _client(config, transport, clock, **kwargs) -> AuthenticatedClient:
    return AuthenticatedClient(
        config,
        http_client=httpx.AsyncClient(transport=transport),
        clock=clock,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_requires_grant_or_username(self, confidential_config) -> None:
        with pytest.raises(InvalidUsageError, match="username/password or a grant"):
            AuthenticatedClient(confidential_config)

    def test_username_without_password(self, confidential_config) -> None:
        with pytest.raises(InvalidUsageError, match="No password given for user 'bob'"):
            AuthenticatedClient(confidential_config, username="bob")

    def test_invalid_usage_exit_code(self, confidential_config) -> None:
        with pytest.raises(InvalidUsageError) as exc_info:
            AuthenticatedClient(confidential_config)
        assert exc_info.value.exit_code == 2

    def test_grant_dict_is_anchored_at_clock(self, confidential_config, clock, make_transport) -> None:
        transport = make_transport(lambda request: httpx.Response(204))
        client = _client(
            confidential_config,
            transport,
            clock,
            grant={"access_token": "ext", "expires_in": 60},
        )

        assert client.grant is not None
        assert client.grant.access_token == "ext"
        assert client.grant.expires_at == clock.now + timedelta(seconds=60)

    def test_loads_config_when_omitted(
        self, isolated_config, make_adapter_json
    ) -> None:
        (isolated_config / "keycloak.json").write_text(
            json.dumps(make_adapter_json(realm="from-file")), encoding="utf-8"
        )

        client = AuthenticatedClient(grant=Grant(access_token="ext"))

        assert client.config.realm == "from-file"


# ---------------------------------------------------------------------------
# Grant acquisition
# ---------------------------------------------------------------------------


class TestGrantAcquisition:
    @pytest.mark.asyncio
    async def test_first_request_obtains_grant(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, username="bob", password="tacos")
        assert client.grant is None

        result = await client.get(API_URL, response_mode=ResponseMode.JSON)

        assert result == {"ok": True}
        assert client.grant.access_token == "access-1"
        [api_request] = transport.to(API_URL)
        assert api_request.headers["Authorization"] == "Bearer access-1"

    @pytest.mark.asyncio
    async def test_usable_grant_is_reused(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, username="bob", password="tacos")

        await client.get(API_URL, response_mode=ResponseMode.JSON)
        await client.get(API_URL, response_mode=ResponseMode.JSON)

        assert len(transport.to(TOKEN_URL)) == 1
        assert len(transport.to(API_URL)) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "grant",
        [Grant(access_token="external"), {"access_token": "external"}],
        ids=["model", "dict"],
    )
    async def test_external_grant_skips_exchange(
        self, confidential_config, clock, make_transport, make_token, grant
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, grant=grant)

        await client.get(API_URL, response_mode=ResponseMode.JSON)

        assert transport.to(TOKEN_URL) == []
        assert transport.to(REFRESH_URL) == []
        assert transport.to(API_URL)[0].headers["Authorization"] == "Bearer external"

    @pytest.mark.asyncio
    async def test_expired_grant_is_refreshed_and_swapped(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        stale = Grant(
            access_token="stale",
            refresh_token="refresh-0",
            expires_at=clock.now - timedelta(seconds=1),
        )
        client = _client(confidential_config, transport, clock, grant=stale)

        await client.get(API_URL, response_mode=ResponseMode.JSON)

        [refresh] = transport.to(REFRESH_URL)
        assert "refresh_token=refresh-0" in refresh.content.decode()
        assert client.grant is not stale
        assert client.grant.access_token == "access-1"
        assert transport.to(API_URL)[0].headers["Authorization"] == "Bearer access-1"

    @pytest.mark.asyncio
    async def test_grant_is_renewed_after_expiry(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, username="bob", password="tacos")

        await client.get(API_URL, response_mode=ResponseMode.JSON)
        clock.advance(301)
        await client.get(API_URL, response_mode=ResponseMode.JSON)

        assert len(transport.to(REFRESH_URL)) == 1
        assert client.grant.access_token == "access-2"

    @pytest.mark.asyncio
    async def test_expired_grant_without_renewal_path(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        stale = Grant(access_token="stale", expires_at=clock.now)
        client = _client(confidential_config, transport, clock, grant=stale)

        with pytest.raises(GrantError, match="cannot be renewed"):
            await client.get(API_URL)

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_obtain_grant_directly_replaces_held_grant(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        held = Grant(access_token="still-valid")
        client = _client(
            confidential_config, transport, clock, grant=held, username="bob", password="tacos"
        )

        grant = await client.obtain_grant_directly()

        assert grant.access_token == "access-1"
        assert client.grant is grant
        assert len(transport.to(TOKEN_URL)) == 1

    @pytest.mark.asyncio
    async def test_obtain_grant_directly_without_credentials(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, grant=Grant(access_token="x"))

        with pytest.raises(GrantError, match="No credentials configured"):
            await client.obtain_grant_directly()


# ---------------------------------------------------------------------------
# Concurrent renewal
# ---------------------------------------------------------------------------


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_exchange(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, username="bob", password="tacos")

        results = await asyncio.gather(
            *(client.get(API_URL, response_mode=ResponseMode.JSON) for _ in range(5))
        )

        assert results == [{"ok": True}] * 5
        assert len(transport.to(TOKEN_URL)) == 1
        assert {r.headers["Authorization"] for r in transport.to(API_URL)} == {"Bearer access-1"}

    @pytest.mark.asyncio
    async def test_concurrent_refresh_of_expired_grant(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        stale = Grant(
            access_token="stale",
            refresh_token="refresh-0",
            expires_at=clock.now - timedelta(seconds=5),
        )
        client = _client(confidential_config, transport, clock, grant=stale)

        await asyncio.gather(*(client.ensure_grant() for _ in range(3)))

        assert len(transport.to(REFRESH_URL)) == 1

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter_and_is_not_cached(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        state = {"fail": True}

        async def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == TOKEN_URL:
                await asyncio.sleep(0)
                if state["fail"]:
                    return httpx.Response(401, json={"error": "invalid_grant"})
                return httpx.Response(200, json=make_token())
            return httpx.Response(200, json={"ok": True})

        transport = make_transport(handler)
        client = _client(confidential_config, transport, clock, username="bob", password="wrong")

        outcomes = await asyncio.gather(
            *(client.ensure_grant() for _ in range(3)), return_exceptions=True
        )

        assert len(outcomes) == 3
        assert all(isinstance(outcome, GrantError) for outcome in outcomes)
        assert all(outcome.status_code == 401 for outcome in outcomes)
        assert len(transport.to(TOKEN_URL)) == 1
        assert client.grant is None

        state["fail"] = False
        grant = await client.ensure_grant()

        assert grant.access_token == "access-1"
        assert len(transport.to(TOKEN_URL)) == 2

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_exchange(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        release = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json=make_token())

        transport = make_transport(handler)
        client = _client(confidential_config, transport, clock, username="bob", password="tacos")

        first = asyncio.ensure_future(client.ensure_grant())
        second = asyncio.ensure_future(client.ensure_grant())
        await asyncio.sleep(0)
        first.cancel()
        release.set()

        grant = await second

        assert first.cancelled()
        assert grant.access_token == "access-1"
        assert len(transport.to(TOKEN_URL)) == 1


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequests:
    @pytest.mark.asyncio
    async def test_bare_url_is_raw_get(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, grant=Grant(access_token="t"))

        response = await client.request(API_URL)

        assert isinstance(response, httpx.Response)
        await response.aclose()
        assert transport.to(API_URL)[0].method == "GET"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("verb", ["get", "post", "put", "patch", "delete"])
    async def test_verb_helpers(
        self, confidential_config, clock, make_transport, make_token, verb
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, grant=Grant(access_token="t"))

        await getattr(client, verb)(API_URL, response_mode=ResponseMode.JSON)

        assert transport.to(API_URL)[0].method == verb.upper()

    @pytest.mark.asyncio
    async def test_setup_hook_passthrough(
        self, confidential_config, clock, make_transport, make_token
    ) -> None:
        transport = make_transport(_provider(make_token))
        client = _client(confidential_config, transport, clock, grant=Grant(access_token="t"))

        def setup(request: httpx.Request) -> None:
            request.headers["X-Request-Id"] = "abc"

        await client.post(
            API_URL, json_body={"a": 1}, response_mode=ResponseMode.JSON, setup=setup
        )

        [request] = transport.to(API_URL)
        assert request.headers["X-Request-Id"] == "abc"
        assert request.headers["Authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_request_errors_propagate(
        self, confidential_config, clock, make_transport
    ) -> None:
        transport = make_transport(lambda request: httpx.Response(403, text="forbidden"))
        client = _client(confidential_config, transport, clock, grant=Grant(access_token="t"))

        with pytest.raises(RequestError, match="403:forbidden"):
            await client.request(RequestSpec(url=API_URL, response_mode=ResponseMode.JSON))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_injected_http_client_is_left_open(
        self, confidential_config, clock, make_transport
    ) -> None:
        http = httpx.AsyncClient(transport=make_transport(lambda request: httpx.Response(204)))

        async with AuthenticatedClient(
            confidential_config, grant=Grant(access_token="t"), http_client=http, clock=clock
        ):
            pass

        assert not http.is_closed
        await http.aclose()

    @pytest.mark.asyncio
    async def test_owned_http_client_is_closed(self, confidential_config) -> None:
        async with AuthenticatedClient(
            confidential_config, grant=Grant(access_token="t")
        ) as client:
            http = client._http

        assert http.is_closed
