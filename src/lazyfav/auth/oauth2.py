"""
Spotify OAuth2 — authorize URL construction and the token endpoint.

The exchanger turns an authorization code or a refresh token into a fresh
:class:`CredentialRecord`. It never reads or writes the token store; the
session orchestrator owns persistence.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import urlencode

import httpx

from lazyfav.auth.tokens import DEFAULT_EXPIRES_IN, CredentialRecord
from lazyfav.errors import (
    AuthError,
    ExchangeFailedError,
    MalformedResponseError,
    RefreshFailedError,
)

logger = logging.getLogger("lazyfav.auth.oauth2")

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"

# Read/modify the library, read playback state
DEFAULT_SCOPES: tuple[str, ...] = (
    "playlist-read-private",
    "user-read-playback-state",
    "user-read-currently-playing",
    "user-library-read",
    "user-library-modify",
)


def generate_state() -> str:
    """Random anti-CSRF value for the authorize request."""
    return secrets.token_urlsafe(16)


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: Sequence[str],
    state: str,
    *,
    authorize_url: str = SPOTIFY_AUTHORIZE_URL,
) -> str:
    """Build the URL the user opens to grant LazyFav access."""
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": " ".join(scopes),
        "state": state,
    }
    return f"{authorize_url}?{urlencode(params)}"


class TokenExchanger:
    """Client for the Spotify token endpoint.

    Both grants authenticate with HTTP Basic using the app's client id and
    secret, and both stamp ``issued_at`` with the local clock.

    Usage::

        async with TokenExchanger(client_id, client_secret) as exchanger:
            record = await exchanger.exchange_code(code)
            record = await exchanger.refresh(record.refresh_token)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        redirect_uri: str = DEFAULT_REDIRECT_URI,
        token_url: str = SPOTIFY_TOKEN_URL,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.token_url = token_url
        self.timeout = timeout
        self._http_client = http_client
        self._clock = clock

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable httpx client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def __aenter__(self) -> TokenExchanger:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    async def exchange_code(self, code: str, *, redirect_uri: str | None = None) -> CredentialRecord:
        """Exchange an authorization code for the first credential record.

        ``redirect_uri`` must be the one sent in the authorize request; it
        defaults to the exchanger's configured URI.

        Raises:
            ExchangeFailedError: Non-2xx status or the request could not be sent.
            MalformedResponseError: ``access_token`` or ``refresh_token`` missing.
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.redirect_uri,
        }
        data = await self._post(payload, ExchangeFailedError, "Token exchange")

        refresh_token = data.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise MalformedResponseError("Token exchange response has no refresh_token")

        record = self._build_record(data, refresh_token)
        logger.info("Exchanged auth code for tokens (expires in %ds)", record.expires_in)
        return record

    async def refresh(self, refresh_token: str) -> CredentialRecord:
        """Mint a new access token from ``refresh_token``.

        Spotify may or may not rotate the refresh token; when the response
        omits it the one passed in stays valid and is kept.

        Raises:
            RefreshFailedError: Non-2xx status or the request could not be sent.
            MalformedResponseError: ``access_token`` missing.
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        data = await self._post(payload, RefreshFailedError, "Token refresh")

        rotated = data.get("refresh_token")
        if rotated is not None and not isinstance(rotated, str):
            raise MalformedResponseError("Token refresh response has a non-string refresh_token")

        record = self._build_record(data, rotated or refresh_token)
        logger.info(
            "Refreshed access token (expires in %ds, refresh token %s)",
            record.expires_in,
            "rotated" if rotated else "kept",
        )
        return record

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _post(
        self,
        payload: dict[str, str],
        error_cls: type[AuthError],
        action: str,
    ) -> dict[str, Any]:
        client = await self._get_client()

        logger.debug("%s: POST %s", action, self.token_url)
        try:
            resp = await client.post(
                self.token_url,
                data=payload,
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            raise error_cls(f"{action} request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise error_cls(
                f"{action} failed with HTTP {resp.status_code}: {_error_detail(resp)}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"{action} response is not JSON") from e

        if not isinstance(data, dict):
            raise MalformedResponseError(f"{action} response is not a JSON object")
        return data

    def _build_record(self, data: dict[str, Any], refresh_token: str) -> CredentialRecord:
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MalformedResponseError("Token response has no access_token")

        raw_expires = data.get("expires_in", DEFAULT_EXPIRES_IN)
        if raw_expires is None:
            raw_expires = DEFAULT_EXPIRES_IN
        try:
            expires_in = int(raw_expires)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"Token response has invalid expires_in: {raw_expires!r}") from e

        return CredentialRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            issued_at=int(self._clock()),
        )


def _error_detail(resp: httpx.Response) -> str:
    """Best human-readable reason from an OAuth error response."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(body, dict):
        detail = body.get("error_description") or body.get("error")
        if detail:
            return str(detail)
    return resp.text[:200]
