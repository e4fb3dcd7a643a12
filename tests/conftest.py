"""Shared test fixtures for grantclient.

Provides provider configurations, a controllable clock, and helpers for
building :class:`httpx.MockTransport`-backed clients that stand in for
the identity provider and the resource server.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from grantclient.models import ProviderConfig
from grantclient.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Provider configuration
# ---------------------------------------------------------------------------


def adapter_json(**overrides: Any) -> dict[str, Any]:
    """A Keycloak adapter file body for a confidential client."""
    data: dict[str, Any] = {
        "realm": "example-realm",
        "auth-server-url": "http://idp.test/auth",
        "resource": "example-app",
        "credentials": {"secret": "s3cret"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def confidential_config() -> ProviderConfig:
    return ProviderConfig.model_validate(adapter_json())


@pytest.fixture
def public_config() -> ProviderConfig:
    data = adapter_json(**{"public-client": True})
    del data["credentials"]
    return ProviderConfig.model_validate(data)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a confidential-client keycloak.json into tmp_path."""
    path = tmp_path / "keycloak.json"
    path.write_text(json.dumps(adapter_json()), encoding="utf-8")
    return path


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration discovery to a temporary directory.

    Points XDG directories into tmp_path, clears GRANTCLIENT_* variables
    and changes the working directory to tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "GRANTCLIENT_CONFIG",
        "GRANTCLIENT_AUTH_SERVER_URL",
        "GRANTCLIENT_REALM",
        "GRANTCLIENT_CLIENT_ID",
        "GRANTCLIENT_CLIENT_SECRET",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("grantclient.config._is_xdg_platform", lambda: True)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def token_payload(
    access_token: str = "access-1",
    expires_in: int | None = 300,
    refresh_token: str | None = "refresh-1",
    **extra: Any,
) -> dict[str, Any]:
    """Build a token endpoint JSON response."""
    data: dict[str, Any] = {"access_token": access_token, "token_type": "bearer"}
    if expires_in is not None:
        data["expires_in"] = expires_in
    if refresh_token is not None:
        data["refresh_token"] = refresh_token
    data.update(extra)
    return data


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], Any]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> Any:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def make_token() -> Callable[..., dict[str, Any]]:
    """Factory for token endpoint JSON bodies (see :func:`token_payload`)."""
    return token_payload


@pytest.fixture
def make_transport() -> Callable[[Callable[[httpx.Request], Any]], RecordingTransport]:
    """Factory for request-recording mock transports."""
    return RecordingTransport


@pytest.fixture
def make_adapter_json() -> Callable[..., dict[str, Any]]:
    return adapter_json
