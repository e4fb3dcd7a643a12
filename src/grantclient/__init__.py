"""grantclient -- HTTP requests authenticated against an OAuth2/OIDC identity provider.

The client either logs in on a user's behalf (resource-owner password
credentials flow) or uses a grant obtained elsewhere, and attaches a valid
bearer token to every outgoing request, refreshing it as it expires.

Typical usage::

    from grantclient import AuthenticatedClient, ResponseMode

    async with AuthenticatedClient(username="bob", password="tacos") as client:
        apps = await client.get(
            "http://localhost:8080/auth/admin/realms/example-realm/applications",
            response_mode=ResponseMode.JSON,
        )

Modules:
    app: Typer CLI entry point.
    models: Pydantic models shared across the package.
    config: Provider configuration discovery and credential sources.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting for the CLI.
"""

__version__ = "0.1.0"

from grantclient.auth import GrantManager  # noqa: E402
from grantclient.client import AuthenticatedClient, AuthenticatedRequestExecutor  # noqa: E402
from grantclient.exceptions import (  # noqa: E402
    ConfigError,
    GrantClientError,
    GrantError,
    InvalidUsageError,
    ProtocolError,
    RequestError,
    TransportError,
)
from grantclient.models import (  # noqa: E402
    Credentials,
    Grant,
    ProviderConfig,
    RequestSpec,
    ResponseMode,
)

__all__ = [
    "AuthenticatedClient",
    "AuthenticatedRequestExecutor",
    "ConfigError",
    "Credentials",
    "Grant",
    "GrantClientError",
    "GrantError",
    "GrantManager",
    "InvalidUsageError",
    "ProtocolError",
    "ProviderConfig",
    "RequestError",
    "RequestSpec",
    "ResponseMode",
    "TransportError",
    "__version__",
]
