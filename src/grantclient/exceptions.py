"""Exception hierarchy for grantclient.

All exceptions inherit from :class:`GrantClientError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`grantclient.exit_codes`.
Library callers catch the specific subclasses; the CLI entry point in
:func:`grantclient.app.main` catches ``GrantClientError`` and exits with the
appropriate code.

None of these errors are retried by the library. Retry policy belongs to
the caller.

Subclass hierarchy::

    GrantClientError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- ConfigError         (exit 1)
    +-- GrantError          (exit 3)
    +-- RequestError        (exit 4 on HTTP 404, exit 5 otherwise)
    +-- TransportError      (exit 6)
    +-- ProtocolError       (exit 7)
"""

from __future__ import annotations

from grantclient.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_GRANT_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PROTOCOL_ERROR,
    EXIT_REQUEST_FAILURE,
)


class GrantClientError(Exception):
    """Base exception for all grantclient errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(GrantClientError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(GrantClientError):
    """Raised for configuration problems (missing file, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class GrantError(GrantClientError):
    """Raised when the identity provider refuses to issue or renew a grant.

    ``status_code`` is ``None`` when no exchange was attempted, e.g. the held
    grant expired and there is neither a refresh token nor user credentials
    to renew it with.

    Args:
        message: Human-readable error description.
        status_code: HTTP status returned by the token endpoint.
        reason: Reason phrase returned by the token endpoint.
        body: Raw response body, kept for diagnostics.
    """

    exit_code = EXIT_GRANT_FAILURE

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reason: str | None = None,
        body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.body = body


class RequestError(GrantClientError):
    """Raised when the resource server answers a JSON-mode request with a non-2xx status.

    The message has the form ``"{status}:{body}"``; the body is the raw
    response text and is never parsed.
    """

    exit_code = EXIT_REQUEST_FAILURE

    def __init__(self, status_code: int, body: str):
        super().__init__(
            f"{status_code}:{body}",
            exit_code=EXIT_NOT_FOUND if status_code == 404 else None,
        )
        self.status_code = status_code
        self.body = body


class TransportError(GrantClientError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused or reset)."""

    exit_code = EXIT_CONNECTION_ERROR


class ProtocolError(GrantClientError):
    """Raised when an endpoint answers 2xx with a body that is not the expected JSON."""

    exit_code = EXIT_PROTOCOL_ERROR
