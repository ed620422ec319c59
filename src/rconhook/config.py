"""Configuration loading for the webhook service."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rconhook.errors import ConfigError

CONFIG_ENV_VAR = "CONFIG_FILE"
DEFAULT_CONFIG_FILE = Path("config.toml")
CONFIG_DIR = Path.home() / ".config" / "rconhook"
HISTORY_FILE = CONFIG_DIR / "history"

DEFAULT_CONNECTION_LIMIT = 2048


@dataclass(frozen=True)
class ServerConfig:
    """HTTP listener settings."""

    address: str
    connection_limit: int = DEFAULT_CONNECTION_LIMIT


@dataclass(frozen=True)
class RconConfig:
    """Remote RCON endpoint."""

    address: str
    password: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    server: ServerConfig
    rcon: RconConfig
    webhooks: dict[str, str] = field(repr=False)


def config_path() -> Path:
    """Return the config file path from $CONFIG_FILE, or ./config.toml."""
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env)
    return DEFAULT_CONFIG_FILE


def load_config(path: Path | None = None) -> AppConfig:
    """Load and validate the configuration file.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid TOML, or
            does not have the expected structure.
    """
    if path is None:
        path = config_path()

    try:
        with path.open("rb") as f:
            raw = tomllib.load(f)
    except OSError as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigError(msg) from e
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in config file {path}: {e}"
        raise ConfigError(msg) from e

    server_raw = _table(raw, "server")
    rcon_raw = _table(raw, "rcon")
    webhooks_raw = _table(raw, "webhooks")

    connection_limit = server_raw.get("connection_limit", DEFAULT_CONNECTION_LIMIT)
    if (
        not isinstance(connection_limit, int)
        or isinstance(connection_limit, bool)
        or connection_limit < 1
    ):
        msg = "server.connection_limit must be a positive integer"
        raise ConfigError(msg)

    password = rcon_raw.get("password")
    if password is not None and not isinstance(password, str):
        msg = "rcon.password must be a string"
        raise ConfigError(msg)

    webhooks: dict[str, str] = {}
    for name, command in webhooks_raw.items():
        if not isinstance(command, str):
            msg = f"webhooks.{name} must be a command string"
            raise ConfigError(msg)
        webhooks[name] = command

    return AppConfig(
        server=ServerConfig(
            address=_string(server_raw, "server", "address"),
            connection_limit=connection_limit,
        ),
        rcon=RconConfig(
            address=_string(rcon_raw, "rcon", "address"),
            password=password,
        ),
        webhooks=webhooks,
    )


def _table(raw: dict[str, Any], key: str) -> dict[str, Any]:
    """Return a required top-level table."""
    value = raw.get(key)
    if not isinstance(value, dict):
        msg = f"Missing [{key}] table in config file"
        raise ConfigError(msg)
    return value


def _string(raw: dict[str, Any], section: str, key: str) -> str:
    """Return a required string value from a table."""
    value = raw.get(key)
    if not isinstance(value, str):
        msg = f"{section}.{key} must be set to a string"
        raise ConfigError(msg)
    return value


def split_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` or ``[v6addr]:port`` string.

    Raises ValueError if the port is missing or not a number.
    """
    host, sep, port_str = address.rpartition(":")
    if not sep or not host:
        msg = f"expected host:port, got {address!r}"
        raise ValueError(msg)
    try:
        port = int(port_str)
    except ValueError:
        msg = f"invalid port in {address!r}"
        raise ValueError(msg) from None
    if not 0 <= port <= 65535:
        msg = f"port out of range in {address!r}"
        raise ValueError(msg)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


def ensure_config_dir() -> None:
    """Create the per-user config directory if it does not exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
