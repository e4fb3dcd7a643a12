"""Canonical Pydantic models shared across all grantclient modules.

The models fall into three groups:

**Grant state** -- :class:`Grant` and :class:`Credentials`, the values the
grant manager consumes and produces. Both are frozen: a refreshed grant is
always a new object that the holder swaps in.

**Provider configuration** -- :class:`ProviderConfig`, deserialised from a
Keycloak-style adapter JSON file by :mod:`grantclient.config`.

**Request description** -- :class:`ResponseMode` and :class:`RequestSpec`,
built per call by the caller and consumed by
:class:`~grantclient.client.executor.AuthenticatedRequestExecutor`.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from grantclient.exceptions import ConfigError, ProtocolError


# --- Grant state ---


class Grant(BaseModel):
    """Tokens proving a successful authentication, with their expiry.

    ``expires_at`` is an absolute, timezone-aware timestamp. ``None`` means
    the provider did not say, and the grant is treated as never expiring.

    Example::

        grant = Grant.from_token_response(
            {"access_token": "abc", "expires_in": 300}, now=utcnow()
        )
        assert not grant.is_expired(utcnow())
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[datetime] = None
    refresh_expires_at: Optional[datetime] = None
    id_token: Optional[str] = None
    session_state: Optional[str] = None
    scope: Optional[str] = None

    @field_validator("expires_at", "refresh_expires_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken as UTC so they compare with the aware clock."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_token_response(cls, payload: Any, now: datetime) -> Grant:
        """Build a grant from a decoded token endpoint response.

        Relative ``expires_in`` and ``refresh_expires_in`` values (seconds)
        are anchored at *now*.

        Args:
            payload: The decoded JSON body of the token response.
            now: The time the response was received.

        Returns:
            A new :class:`Grant`.

        Raises:
            ProtocolError: If *payload* is not an object, lacks a non-empty
                ``access_token``, or carries fields of the wrong type.
        """
        if not isinstance(payload, dict):
            raise ProtocolError(
                f"Token response must be a JSON object, got {type(payload).__name__}"
            )
        if not payload.get("access_token"):
            raise ProtocolError("Token response missing 'access_token' field")

        try:
            return cls(
                access_token=payload["access_token"],
                refresh_token=payload.get("refresh_token"),
                token_type=payload.get("token_type") or "bearer",
                expires_at=_anchor(now, payload.get("expires_in")),
                refresh_expires_at=_anchor(now, payload.get("refresh_expires_in")),
                id_token=payload.get("id_token"),
                session_state=payload.get("session_state"),
                scope=payload.get("scope"),
            )
        except (ValidationError, TypeError, ValueError) as exc:
            raise ProtocolError(f"Malformed token response: {exc}") from exc

    def is_expired(self, now: datetime, leeway: float = 0.0) -> bool:
        """Return ``True`` once ``expires_at`` has passed (minus *leeway* seconds)."""
        if self.expires_at is None:
            return False
        return now + timedelta(seconds=leeway) >= self.expires_at

    def can_refresh(self, now: datetime) -> bool:
        """Return ``True`` if the refresh token is present and not known to be expired."""
        if not self.refresh_token:
            return False
        if self.refresh_expires_at is None:
            return True
        return now < self.refresh_expires_at


def _anchor(now: datetime, seconds: Any) -> Optional[datetime]:
    # Keycloak reports 0 for refresh_expires_in on offline tokens.
    if seconds is None or seconds == 0:
        return None
    return now + timedelta(seconds=float(seconds))


class Credentials(BaseModel):
    """End-user and client credentials for the password grant.

    Immutable for the lifetime of a client. ``client_secret`` is only used
    by confidential (non-public) clients.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)
    client_id: str
    client_secret: Optional[str] = Field(default=None, repr=False)
    public_client: bool = False

    @classmethod
    def for_user(cls, config: ProviderConfig, username: str, password: str) -> Credentials:
        """Combine the provider's client identity with an end user's login."""
        return cls(
            username=username,
            password=password,
            client_id=config.client_id,
            client_secret=config.client_secret,
            public_client=config.public_client,
        )


# --- Provider configuration ---


class ProviderConfig(BaseModel):
    """Identity provider settings, usually read from a ``keycloak.json`` file.

    Accepts both the Keycloak adapter key names (``auth-server-url``,
    ``resource``, ``public-client``, ``credentials.secret``) and the Python
    field names.

    The form contract of the token endpoint is configuration-driven:
    ``token_path``/``refresh_path`` are templates with a ``{realm}``
    placeholder, ``grant_type`` may be set to ``None`` for providers that
    reject the field, and ``client_id_in_form`` controls whether
    confidential clients repeat their id in the body (public clients always
    send it).

    Example::

        ProviderConfig.model_validate({
            "realm": "example-realm",
            "auth-server-url": "http://localhost:8080/auth",
            "resource": "my-app",
            "public-client": True,
        })
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    auth_server_url: str = Field(alias="auth-server-url")
    realm: str
    client_id: str = Field(alias="resource")
    client_secret: Optional[str] = Field(default=None, repr=False)
    public_client: bool = Field(default=False, alias="public-client")
    # Token endpoint form contract
    token_path: str = "/realms/{realm}/tokens/grants/access"
    refresh_path: str = "/realms/{realm}/tokens/refresh"
    grant_type: Optional[str] = "password"
    client_id_in_form: bool = True
    extra_token_params: dict[str, str] = Field(default_factory=dict)
    # HTTP behaviour
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")
    expiry_leeway: float = Field(
        default=0.0, description="Seconds before expiry at which a grant is renewed"
    )

    @model_validator(mode="before")
    @classmethod
    def _lift_adapter_secret(cls, data: Any) -> Any:
        """Move ``credentials.secret`` from the adapter layout to ``client_secret``."""
        if isinstance(data, dict) and "client_secret" not in data:
            credentials = data.get("credentials")
            if isinstance(credentials, dict) and credentials.get("secret"):
                data = {**data, "client_secret": credentials["secret"]}
        return data

    @property
    def token_endpoint(self) -> str:
        """Absolute URL of the password-grant token endpoint."""
        return self._endpoint(self.token_path)

    @property
    def refresh_endpoint(self) -> str:
        """Absolute URL of the refresh-token endpoint."""
        return self._endpoint(self.refresh_path)

    def _endpoint(self, template: str) -> str:
        base = self.auth_server_url.rstrip("/")
        path = template.format(realm=self.realm)
        if not path.startswith("/"):
            path = "/" + path
        return base + path

    def require_secret(self) -> str:
        """Return the client secret of a confidential client.

        Raises:
            ConfigError: If no secret is configured.
        """
        if not self.client_secret:
            raise ConfigError(
                f"Client '{self.client_id}' is not public and has no client secret configured"
            )
        return self.client_secret


# --- Request description ---


class ResponseMode(str, enum.Enum):
    """How :class:`~grantclient.client.executor.AuthenticatedRequestExecutor` hands back a response.

    ``RAW`` returns the open :class:`httpx.Response` stream without checking
    the status code. ``JSON`` buffers the body, validates the status and
    decodes the payload.
    """

    RAW = "raw"
    JSON = "json"


class RequestSpec(BaseModel):
    """Caller-supplied description of one outgoing request.

    At most one of ``content``, ``json_body`` and ``data`` should be set.
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    content: Optional[Union[str, bytes]] = None
    json_body: Optional[Any] = None
    data: Optional[dict[str, Any]] = None
    response_mode: ResponseMode = ResponseMode.RAW
    timeout: Optional[float] = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def coerce(cls, value: Union[RequestSpec, str]) -> RequestSpec:
        """Accept either a :class:`RequestSpec` or a bare URL string."""
        if isinstance(value, RequestSpec):
            return value
        return cls(url=value)

    def has_header(self, name: str) -> bool:
        """Case-insensitive check for a caller-supplied header."""
        lowered = name.lower()
        return any(key.lower() == lowered for key in self.headers)
