"""Provider configuration: where ``keycloak.json`` lives and how it is read.

A Keycloak adapter file (``realm``, ``auth-server-url``, ``resource``,
``credentials.secret``, ``public-client``) becomes a
:class:`~grantclient.models.ProviderConfig`. The file is found by
:func:`find_config_file`; ``GRANTCLIENT_*`` environment variables then
override individual values, so one file can serve several realms.

Per-user directories follow the XDG Base Directory layout on Linux/BSD and
fall back to ``~/.grantclient/`` on macOS and Windows.

:func:`resolve_credential` turns the CLI's ``--password-source`` and
``--token-source`` descriptors into secrets.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
from pathlib import Path
from typing import Any, Optional, Union

from grantclient.exceptions import ConfigError
from grantclient.models import ProviderConfig

_APP_NAME = "grantclient"
_CONFIG_FILENAME = "keycloak.json"
_CONFIG_ENV_VAR = "GRANTCLIENT_CONFIG"

_ENV_OVERRIDES = {
    "GRANTCLIENT_AUTH_SERVER_URL": "auth_server_url",
    "GRANTCLIENT_REALM": "realm",
    "GRANTCLIENT_CLIENT_ID": "client_id",
    "GRANTCLIENT_CLIENT_SECRET": "client_secret",
}

# Adapter key -> field name, for keys that have both spellings.
_ALIASES = {"auth-server-url": "auth_server_url", "resource": "client_id"}

# kind -> (XDG variable, default location under $HOME)
_XDG_DIRS = {
    "config": ("XDG_CONFIG_HOME", (".config",)),
    "data": ("XDG_DATA_HOME", (".local", "share")),
}


# --- Per-user directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(kind: str) -> Path:
    if _is_xdg_platform():
        env_var, default = _XDG_DIRS[kind]
        base = Path(os.environ.get(env_var) or Path.home().joinpath(*default))
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
        if kind == "data":
            path = path / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """``$XDG_CONFIG_HOME/grantclient`` on Linux/BSD, ``~/.grantclient`` elsewhere. Created if missing."""
    return _app_dir("config")


def get_data_dir() -> Path:
    """Crash log directory.

    ``$XDG_DATA_HOME/grantclient`` (default ``~/.local/share/grantclient``)
    on Linux/BSD, ``~/.grantclient/logs`` elsewhere. Created if missing.
    """
    return _app_dir("data")


# --- Provider config ---


def find_config_file(path: Optional[Union[str, Path]] = None) -> Path:
    """Locate ``keycloak.json``.

    The first of these wins:

    1. *path*, when given
    2. ``$GRANTCLIENT_CONFIG``
    3. ``keycloak.json`` in the working directory
    4. ``keycloak.json`` in :func:`get_config_dir`

    An explicitly named file (1 or 2) must exist; there is no fallthrough
    to the implicit locations.

    Raises:
        ConfigError: If the named file is missing or nothing is found.
    """
    if path is not None:
        return _must_exist(Path(path).expanduser(), "")

    env_path = os.environ.get(_CONFIG_ENV_VAR)
    if env_path:
        return _must_exist(Path(env_path).expanduser(), f" (from ${_CONFIG_ENV_VAR})")

    candidates = [Path.cwd() / _CONFIG_FILENAME, get_config_dir() / _CONFIG_FILENAME]
    for candidate in candidates:
        if candidate.is_file():
            return candidate

    raise ConfigError(
        f"No {_CONFIG_FILENAME} found in the current directory or {get_config_dir()}; "
        f"pass --config or set ${_CONFIG_ENV_VAR}"
    )


def _must_exist(path: Path, origin: str) -> Path:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}{origin}")
    return path


def parse_provider_config(data: Any, source: str = "<memory>") -> ProviderConfig:
    """Validate an adapter mapping after applying ``GRANTCLIENT_*`` overrides.

    Raises:
        ConfigError: If *data* is not an object or fails validation.
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid provider config at {source}: expected a JSON object")

    merged = dict(data)
    for env_var, field in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            merged[field] = value
    for alias, field in _ALIASES.items():
        if field in merged:
            merged.pop(alias, None)

    try:
        return ProviderConfig.model_validate(merged)
    except ValueError as exc:
        raise ConfigError(f"Invalid provider config at {source}: {exc}") from exc


def load_provider_config(path: Optional[Union[str, Path]] = None) -> ProviderConfig:
    """Find, read and validate the provider configuration.

    Raises:
        ConfigError: If no file is found, it cannot be read, it is not
            valid JSON, or it fails validation.
    """
    config_path = find_config_file(path)
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid provider config at {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read provider config {config_path}: {exc}") from exc
    return parse_provider_config(data, str(config_path))


# --- Credential sources ---


def resolve_credential(source: str) -> str:
    """Read a password or token from a source descriptor.

    ``env:VAR`` reads an environment variable (an empty value is valid).
    ``file:PATH`` reads a file and strips surrounding whitespace. ``prompt``
    asks on the terminal without echo.

    Raises:
        ConfigError: If the descriptor is unknown or the secret cannot be read.
    """
    scheme, _, target = source.partition(":")
    if scheme == "env" and target:
        return _from_env(target)
    if scheme == "file" and target:
        return _from_file(Path(target).expanduser())
    if source == "prompt":
        return _from_prompt()
    raise ConfigError(f"Unknown credential source format: {source}")


def _from_env(name: str) -> str:
    try:
        return os.environ[name]
    except KeyError:
        raise ConfigError(f"Environment variable '{name}' is not set") from None


def _from_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        raise ConfigError(f"Credential file not found: {path}") from None
    except OSError as exc:
        raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc


def _from_prompt() -> str:
    if not sys.stdin.isatty():
        raise ConfigError("Cannot prompt for a password: stdin is not a TTY")
    return getpass.getpass("Password: ")
