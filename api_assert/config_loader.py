"""Config Loader - builds ClientConfig from YAML files or base URLs.

YAML files may reference environment variables as ${VAR}, which keeps
credentials out of checked-in test configuration:

    host: api.staging.internal
    use_tls: true
    base_path: /v1
    auth: ${API_USER}:${API_PASSWORD}
    default_headers:
      Accept: application/json
    default_status: 200
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit

import yaml
from pydantic import ValidationError

from api_assert.errors import ConfigError
from api_assert.models import ClientConfig

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_client_config(config_path: Path | str) -> ClientConfig:
    """Load a ClientConfig from YAML with ${ENV_VAR} substitution."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ClientConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def client_config_from_url(base_url: str, **overrides: Any) -> ClientConfig:
    """Derive protocol, host, port, base path and auth from a base URL.

    Keyword overrides are applied on top, e.g. default_status=200.
    """
    parts = urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigError(f"Base URL must be http(s)://host[:port][/path], got {base_url!r}")

    fields: dict[str, Any] = {
        "use_tls": parts.scheme == "https",
        "host": parts.hostname,
        "base_path": parts.path.rstrip("/"),
    }
    try:
        port = parts.port
    except ValueError as e:
        raise ConfigError(f"Invalid port in base URL {base_url!r}: {e}") from e
    if port is not None:
        fields["port"] = port
    if parts.username is not None:
        fields["auth"] = f"{unquote(parts.username)}:{unquote(parts.password or '')}"
    fields.update(overrides)

    try:
        return ClientConfig.model_validate(fields)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
