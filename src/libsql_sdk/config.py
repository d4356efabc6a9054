"""
Connection context for a remote libSQL endpoint.

Provides an immutable container for the normalized endpoint URL and the
optional auth token, owned by the HTTP transport for its whole lifetime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlsplit

from .exceptions import ConfigurationError

SDK_VERSION = "0.1.0"
USER_AGENT = f"libsql-sdk-python/{SDK_VERSION}"

DEFAULT_TIMEOUT = 30.0

ENV_URL = "LIBSQL_URL"
ENV_AUTH_TOKEN = "LIBSQL_AUTH_TOKEN"
ENV_TIMEOUT = "LIBSQL_TIMEOUT"

# Scheme rewrites applied before validation; the result must be http(s)
_SCHEME_REWRITES = {
    "libsql": "https",
    "ws": "http",
    "wss": "https",
}
_SUPPORTED_SCHEMES = ("http", "https")


def normalize_url(url: str) -> str:
    """
    Normalize a remote endpoint URL.

    ``libsql://`` becomes ``https://`` (and ``ws``/``wss`` become ``http``/``https``);
    trailing slashes are stripped.

    Raises:
        ConfigurationError: If the URL is empty, has an unsupported scheme or no host
    """
    if not url or not url.strip():
        raise ConfigurationError("URL cannot be empty")

    url = url.strip()
    scheme, sep, rest = url.partition("://")
    if not sep:
        raise ConfigurationError(f"URL {url!r} has no scheme; expected libsql://, https:// or http://")

    scheme = scheme.lower()
    scheme = _SCHEME_REWRITES.get(scheme, scheme)
    if scheme not in _SUPPORTED_SCHEMES:
        raise ConfigurationError(f"Unsupported URL scheme {scheme!r} in {url!r}")

    normalized = f"{scheme}://{rest}".rstrip("/")
    try:
        host = urlsplit(normalized).hostname
    except ValueError as e:
        raise ConfigurationError(f"Malformed URL {url!r}: {e}") from e
    if not host:
        raise ConfigurationError(f"URL {url!r} has no host")
    return normalized


@dataclass(frozen=True)
class ConnectionContext:
    """
    Immutable configuration for one logical remote connection.

    Attributes:
        base_url: Normalized absolute endpoint URL
        auth_token: Bearer token; None when the server runs without auth
        timeout: HTTP timeout in seconds, handed to the HTTP stack
    """

    base_url: str
    auth_token: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def create(cls, url: str, auth_token: str | None = None, timeout: float = DEFAULT_TIMEOUT) -> ConnectionContext:
        """Build a context, normalizing the URL and dropping a blank token."""
        token = auth_token.strip() if auth_token and auth_token.strip() else None
        return cls(base_url=normalize_url(url), auth_token=token, timeout=timeout)

    @classmethod
    def from_env(cls) -> ConnectionContext:
        """
        Build a context from ``LIBSQL_URL``, ``LIBSQL_AUTH_TOKEN`` and ``LIBSQL_TIMEOUT``.

        Raises:
            ConfigurationError: If ``LIBSQL_URL`` is unset or invalid
        """
        url = os.getenv(ENV_URL)
        if not url:
            raise ConfigurationError(f"{ENV_URL} is not set")
        raw_timeout = os.getenv(ENV_TIMEOUT)
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
        except ValueError:
            raise ConfigurationError(f"{ENV_TIMEOUT} must be a number, got {raw_timeout!r}") from None
        return cls.create(url, os.getenv(ENV_AUTH_TOKEN), timeout)

    @property
    def headers(self) -> dict[str, str]:
        """Authorization header, when a token is configured."""
        if self.auth_token:
            return {"Authorization": f"Bearer {self.auth_token}"}
        return {}

    def __repr__(self) -> str:
        token = "***" if self.auth_token else None
        return f"ConnectionContext(base_url={self.base_url!r}, auth_token={token!r}, timeout={self.timeout!r})"


__all__ = ["ConnectionContext", "DEFAULT_TIMEOUT", "SDK_VERSION", "USER_AGENT", "normalize_url"]
