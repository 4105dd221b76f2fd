"""
LazyFav — session orchestrator.

Decides once per run whether the stored credentials can be used as they are,
need a refresh, or require a full browser login, and persists whatever the
token endpoint returns before the access token is handed on.
"""

from __future__ import annotations

import logging
import time
import webbrowser
from collections.abc import Callable

from lazyfav.auth.listener import AuthorizationListener
from lazyfav.auth.oauth2 import TokenExchanger, build_authorization_url, generate_state
from lazyfav.auth.store import TokenStore
from lazyfav.auth.tokens import CredentialRecord
from lazyfav.config import LazyFavConfig
from lazyfav.errors import RefreshFailedError

logger = logging.getLogger("lazyfav.session")

ListenerFactory = Callable[[str], AuthorizationListener]


class SessionOrchestrator:
    """Credential lifecycle for a single run.

    Usage::

        config = LazyFavConfig.load("lazyfav.yaml")
        client_id, client_secret = config.require_credentials()
        async with TokenExchanger(client_id, client_secret) as exchanger:
            session = SessionOrchestrator(config, exchanger=exchanger)
            token = await session.ensure_access_token()
    """

    def __init__(
        self,
        config: LazyFavConfig,
        *,
        exchanger: TokenExchanger,
        store: TokenStore | None = None,
        listener_factory: ListenerFactory | None = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        show_url: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.exchanger = exchanger
        self.store = store or TokenStore(config.token_file)
        self.listener_factory = listener_factory or self._default_listener
        self.open_browser = open_browser
        self.show_url = show_url or _print_url
        self.clock = clock
        self.record: CredentialRecord | None = None

    def _default_listener(self, state: str) -> AuthorizationListener:
        cfg = self.config.listener
        return AuthorizationListener(cfg.host, cfg.port, cfg.path, expected_state=state)

    async def ensure_access_token(self) -> str:
        """Return an access token that is valid for at least the safety margin."""
        record = self.store.load()

        if record is None:
            logger.info("No stored Spotify credentials, starting browser login")
            record = await self.authorize()
        elif not record.is_fresh(self.clock()):
            logger.info("Access token expired or about to, refreshing")
            record = await self._refresh(record)
        else:
            logger.debug("Stored access token is fresh")

        self.record = record
        return record.access_token

    async def _refresh(self, record: CredentialRecord) -> CredentialRecord:
        try:
            new_record = await self.exchanger.refresh(record.refresh_token)
        except RefreshFailedError:
            if not self.config.reauthorize_on_refresh_failure:
                raise
            logger.warning("Refresh token rejected, starting a new browser login")
            return await self.authorize()

        self.store.save(new_record)
        return new_record

    async def authorize(self) -> CredentialRecord:
        """Run the browser login, exchange the code and persist the tokens."""
        state = generate_state()
        listener = self.listener_factory(state)
        listener.start()
        try:
            auth_url = build_authorization_url(
                self.exchanger.client_id,
                listener.redirect_uri,
                self.config.spotify.scopes,
                state,
                authorize_url=self.config.spotify.authorize_url,
            )
            self._open(auth_url)
            code = await listener.wait_for_code(timeout=self.config.listener.timeout)
        finally:
            listener.stop()

        record = await self.exchanger.exchange_code(code, redirect_uri=listener.redirect_uri)
        self.store.save(record)
        logger.info("Logged in to Spotify, tokens saved to %s", self.store.path)
        return record

    def _open(self, auth_url: str) -> None:
        """Hand the URL to the browser; fall back to showing it."""
        try:
            opened = self.open_browser(auth_url)
        except (webbrowser.Error, OSError) as e:
            logger.warning("Failed to open browser: %s", e)
            opened = False

        if not opened:
            self.show_url(auth_url)


def _print_url(auth_url: str) -> None:
    print(f"Please visit: {auth_url}")
