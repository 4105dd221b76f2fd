"""
Exceptions raised by LazyFav.

Every error that should abort a run derives from :class:`LazyFavError`, so the
CLI can turn it into a readable message and a non-zero exit code.
"""

from __future__ import annotations


class LazyFavError(Exception):
    """Base class for all LazyFav errors."""


class ConfigError(LazyFavError):
    """Required configuration (client id / secret) is missing or invalid."""


class ListenerError(LazyFavError):
    """The local callback listener could not deliver an authorization code."""


class StorageError(LazyFavError):
    """The credential file could not be written."""


class AuthError(LazyFavError):
    """The token endpoint did not produce usable credentials."""

    kind = "auth_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExchangeFailedError(AuthError):
    """Authorization-code exchange was rejected."""

    kind = "exchange_failed"


class RefreshFailedError(AuthError):
    """Refresh-token grant was rejected; a new login is required."""

    kind = "refresh_failed"


class MalformedResponseError(AuthError):
    """The token endpoint answered 2xx but without a required field."""

    kind = "malformed_response"


__all__ = [
    "AuthError",
    "ConfigError",
    "ExchangeFailedError",
    "LazyFavError",
    "ListenerError",
    "MalformedResponseError",
    "RefreshFailedError",
    "StorageError",
]
