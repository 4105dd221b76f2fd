"""
LazyFav authentication and token management.

Browser login through a local callback listener, token exchange and refresh
against the Spotify accounts service, and the on-disk credential file.
"""

from lazyfav.auth.listener import AuthorizationListener
from lazyfav.auth.oauth2 import (
    DEFAULT_SCOPES,
    TokenExchanger,
    build_authorization_url,
    generate_state,
)
from lazyfav.auth.oneshot import OneShot
from lazyfav.auth.store import TokenStore
from lazyfav.auth.tokens import SAFETY_MARGIN, CredentialRecord

__all__ = [
    "AuthorizationListener",
    "CredentialRecord",
    "DEFAULT_SCOPES",
    "OneShot",
    "SAFETY_MARGIN",
    "TokenExchanger",
    "TokenStore",
    "build_authorization_url",
    "generate_state",
]
