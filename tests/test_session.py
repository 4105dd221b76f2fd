"""Tests for the session orchestrator — the per-run credential decisions."""

from __future__ import annotations

import threading
import time
import webbrowser
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from lazyfav.auth.oauth2 import TokenExchanger
from lazyfav.auth.store import TokenStore
from lazyfav.auth.tokens import CredentialRecord
from lazyfav.config import LazyFavConfig
from lazyfav.errors import ListenerError, RefreshFailedError
from lazyfav.session import SessionOrchestrator

NOW = 1_700_000_000


class FakeListener:
    """Stands in for AuthorizationListener; delivers a canned result."""

    def __init__(self, code: str | None = "abc123", error: Exception | None = None) -> None:
        self.code = code
        self.error = error
        self.started = False
        self.stopped = False

    @property
    def redirect_uri(self) -> str:
        return "http://127.0.0.1:8888/callback"

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    async def wait_for_code(self, timeout: float | None = None) -> str:
        if self.error:
            raise self.error
        assert self.code is not None
        return self.code


class TokenEndpoint:
    """In-memory token endpoint that records grants."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.forms: list[dict[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.forms.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        return self.responses.pop(0)


def _exchanger(endpoint: TokenEndpoint, clock=lambda: NOW) -> TokenExchanger:  # noqa: ANN001
    return TokenExchanger(
        "test_client",
        "test_secret",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(endpoint)),
        clock=clock,
    )


def _session(
    tmp_path: Path,
    endpoint: TokenEndpoint,
    listener: FakeListener | None = None,
    **kwargs,
) -> SessionOrchestrator:
    config = kwargs.pop("config", None) or LazyFavConfig()
    listener = listener or FakeListener()
    return SessionOrchestrator(
        config,
        exchanger=_exchanger(endpoint),
        store=TokenStore(tmp_path / "spotify_tokens.json"),
        listener_factory=lambda state: listener,
        open_browser=kwargs.pop("open_browser", lambda url: True),
        clock=lambda: NOW,
        **kwargs,
    )


def _stored(tmp_path: Path, **fields) -> CredentialRecord:
    record = CredentialRecord(
        access_token=fields.get("access_token", "AT0"),
        refresh_token=fields.get("refresh_token", "RT0"),
        expires_in=fields.get("expires_in", 3600),
        issued_at=fields.get("issued_at", NOW),
    )
    TokenStore(tmp_path / "spotify_tokens.json").save(record)
    return record


# ---------------------------------------------------------------------------
# No stored credentials
# ---------------------------------------------------------------------------


class TestFirstLogin:
    @pytest.mark.asyncio
    async def test_authorizes_exchanges_and_saves(self, tmp_path: Path) -> None:
        endpoint = TokenEndpoint(
            httpx.Response(200, json={"access_token": "AT1", "refresh_token": "RT1", "expires_in": 3600})
        )
        listener = FakeListener(code="abc123")
        opened: list[str] = []
        session = _session(tmp_path, endpoint, listener, open_browser=lambda url: opened.append(url) or True)

        token = await session.ensure_access_token()

        assert token == "AT1"
        assert endpoint.forms[0]["grant_type"] == "authorization_code"
        assert endpoint.forms[0]["code"] == "abc123"
        assert listener.started and listener.stopped
        assert opened and opened[0].startswith("https://accounts.spotify.com/authorize?")

        stored = TokenStore(tmp_path / "spotify_tokens.json").load()
        assert stored is not None
        assert stored.access_token == "AT1"
        assert stored.refresh_token == "RT1"
        assert stored.issued_at == NOW

    @pytest.mark.asyncio
    async def test_browser_failure_shows_url(self, tmp_path: Path) -> None:
        endpoint = TokenEndpoint(
            httpx.Response(200, json={"access_token": "AT1", "refresh_token": "RT1"})
        )
        shown: list[str] = []

        def broken_browser(url: str) -> bool:
            raise webbrowser.Error("no browser")

        session = _session(tmp_path, endpoint, open_browser=broken_browser, show_url=shown.append)
        assert await session.ensure_access_token() == "AT1"
        assert len(shown) == 1
        assert "client_id=test_client" in shown[0]

    @pytest.mark.asyncio
    async def test_browser_returning_false_shows_url(self, tmp_path: Path) -> None:
        endpoint = TokenEndpoint(
            httpx.Response(200, json={"access_token": "AT1", "refresh_token": "RT1"})
        )
        shown: list[str] = []
        session = _session(tmp_path, endpoint, open_browser=lambda url: False, show_url=shown.append)
        await session.ensure_access_token()
        assert len(shown) == 1

    @pytest.mark.asyncio
    async def test_listener_error_aborts_before_exchange(self, tmp_path: Path) -> None:
        endpoint = TokenEndpoint()
        listener = FakeListener(error=ListenerError("authorization failed: access_denied"))
        session = _session(tmp_path, endpoint, listener)

        with pytest.raises(ListenerError):
            await session.ensure_access_token()

        assert listener.stopped
        assert endpoint.forms == []
        assert not (tmp_path / "spotify_tokens.json").exists()


# ---------------------------------------------------------------------------
# Stored credentials
# ---------------------------------------------------------------------------


class TestStoredCredentials:
    @pytest.mark.asyncio
    async def test_fresh_token_used_as_is(self, tmp_path: Path) -> None:
        _stored(tmp_path, access_token="AT0", issued_at=NOW - 100)
        endpoint = TokenEndpoint()
        listener = FakeListener()
        session = _session(tmp_path, endpoint, listener)

        assert await session.ensure_access_token() == "AT0"
        assert endpoint.forms == []
        assert not listener.started

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_before_use(self, tmp_path: Path) -> None:
        _stored(tmp_path, refresh_token="RT0", issued_at=NOW - 3600, expires_in=3600)
        endpoint = TokenEndpoint(
            httpx.Response(200, json={"access_token": "AT2", "expires_in": 3600})
        )
        listener = FakeListener()
        session = _session(tmp_path, endpoint, listener)

        assert await session.ensure_access_token() == "AT2"
        assert endpoint.forms == [{"grant_type": "refresh_token", "refresh_token": "RT0"}]
        assert not listener.started

        stored = TokenStore(tmp_path / "spotify_tokens.json").load()
        assert stored == CredentialRecord("AT2", "RT0", 3600, NOW)

    @pytest.mark.asyncio
    async def test_token_inside_safety_margin_is_refreshed(self, tmp_path: Path) -> None:
        _stored(tmp_path, issued_at=NOW - 3541, expires_in=3600)
        endpoint = TokenEndpoint(
            httpx.Response(200, json={"access_token": "AT2", "refresh_token": "RT2"})
        )
        session = _session(tmp_path, endpoint)
        assert await session.ensure_access_token() == "AT2"

    @pytest.mark.asyncio
    async def test_refresh_failure_leaves_store_untouched(self, tmp_path: Path) -> None:
        _stored(tmp_path, issued_at=NOW - 3600)
        path = tmp_path / "spotify_tokens.json"
        before = path.read_bytes()

        endpoint = TokenEndpoint(httpx.Response(400, json={"error": "invalid_grant"}))
        listener = FakeListener()
        session = _session(tmp_path, endpoint, listener)

        with pytest.raises(RefreshFailedError):
            await session.ensure_access_token()

        assert path.read_bytes() == before
        assert not listener.started

    @pytest.mark.asyncio
    async def test_refresh_failure_can_fall_back_to_login(self, tmp_path: Path) -> None:
        _stored(tmp_path, issued_at=NOW - 3600)
        endpoint = TokenEndpoint(
            httpx.Response(400, json={"error": "invalid_grant"}),
            httpx.Response(200, json={"access_token": "AT3", "refresh_token": "RT3"}),
        )
        listener = FakeListener(code="fresh-code")
        config = LazyFavConfig(reauthorize_on_refresh_failure=True)
        session = _session(tmp_path, endpoint, listener, config=config)

        assert await session.ensure_access_token() == "AT3"
        assert listener.started
        assert endpoint.forms[1]["code"] == "fresh-code"

    @pytest.mark.asyncio
    async def test_corrupt_store_triggers_login(self, tmp_path: Path) -> None:
        (tmp_path / "spotify_tokens.json").write_text("{broken")
        endpoint = TokenEndpoint(
            httpx.Response(200, json={"access_token": "AT1", "refresh_token": "RT1"})
        )
        listener = FakeListener()
        session = _session(tmp_path, endpoint, listener)

        assert await session.ensure_access_token() == "AT1"
        assert listener.started


# ---------------------------------------------------------------------------
# End to end with the real listener
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_browser_login_through_real_listener(tmp_path: Path) -> None:
    endpoint = TokenEndpoint(
        httpx.Response(200, json={"access_token": "AT1", "refresh_token": "RT1", "expires_in": 3600})
    )

    def fake_browser(url: str) -> bool:
        # Play the provider: redirect back with a code and the same state
        params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}

        def redirect() -> None:
            with httpx.Client(trust_env=False, timeout=5) as client:
                client.get(params["redirect_uri"], params={"code": "abc123", "state": params["state"]})

        threading.Thread(target=redirect, daemon=True).start()
        return True

    config = LazyFavConfig(listener={"port": 0, "timeout": 10})
    session = SessionOrchestrator(
        config,
        exchanger=_exchanger(endpoint, clock=time.time),
        store=TokenStore(tmp_path / "spotify_tokens.json"),
        open_browser=fake_browser,
    )

    before = time.time()
    assert await session.ensure_access_token() == "AT1"

    form = endpoint.forms[0]
    assert form["code"] == "abc123"
    assert form["redirect_uri"].startswith("http://127.0.0.1:")
    assert form["redirect_uri"].endswith("/callback")

    stored = TokenStore(tmp_path / "spotify_tokens.json").load()
    assert stored is not None
    assert stored.access_token == "AT1"
    assert abs(stored.issued_at - before) <= 5
