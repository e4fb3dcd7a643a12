"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~grantclient.exceptions.GrantClientError` subclass.
Shell wrappers can inspect the exit code to tell a rejected login apart
from an unreachable server without parsing stderr.

Example::

    $ grantclient request https://api.example.com/things --username bob
    $ echo $?
    3   # EXIT_GRANT_FAILURE -- the identity provider rejected the credentials
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including configuration problems)."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_GRANT_FAILURE = 3
"""The identity provider refused to issue or renew a grant."""

EXIT_NOT_FOUND = 4
"""The resource server answered HTTP 404."""

EXIT_REQUEST_FAILURE = 5
"""The resource server answered with a non-2xx status other than 404."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PROTOCOL_ERROR = 7
"""A server returned a body that could not be decoded as the expected JSON."""
