"""Exception types shared by the RCON client, lookup table, and config loader."""

from __future__ import annotations


class RconhookError(Exception):
    """Base exception for all rconhook errors."""


class ConfigError(RconhookError):
    """Raised when the configuration file is missing or malformed."""


class RconError(RconhookError):
    """Base exception for failures while executing an RCON command."""


class TransportError(RconError):
    """Raised when the connection cannot be established, read, or written."""


class ProtocolError(RconError):
    """Raised when the server sends a malformed or unexpected message."""


class EncodingError(RconError):
    """Raised when a request cannot be framed."""


class DecodingError(RconError):
    """Raised when a response body is not valid UTF-8."""


class AuthenticationError(RconError):
    """Raised when the authentication transaction fails."""


def describe_error(error: BaseException) -> str:
    """Render an error and its chain of causes on one line."""
    parts = [str(error)]
    cause = error.__cause__
    while cause is not None:
        parts.append(f"caused by: {cause}")
        cause = cause.__cause__
    return "; ".join(parts)
