"""Grant acquisition and renewal against the identity provider.

- :class:`GrantManager` -- password-grant exchange, refresh, and the
  freshness decision made before every request.
- :func:`utcnow` -- the default clock used for expiry checks.
"""

from grantclient.auth.grants import GrantManager, utcnow

__all__ = ["GrantManager", "utcnow"]
