"""
LazyFav configuration management.

Supports loading from a YAML file, environment variables, and keyword overrides.
The Spotify client id and secret normally come from the environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from lazyfav.auth.oauth2 import DEFAULT_SCOPES, SPOTIFY_AUTHORIZE_URL, SPOTIFY_TOKEN_URL
from lazyfav.errors import ConfigError

CLIENT_ID_ENV = "SPOTIFY_CLIENT_ID"
CLIENT_SECRET_ENV = "SPOTIFY_CLIENT_SECRET"


class SpotifyConfig(BaseModel):
    """Spotify app registration and endpoints."""

    client_id: str | None = Field(default=None, description="App client id (or set SPOTIFY_CLIENT_ID)")
    client_secret: str | None = Field(default=None, description="App client secret (or set SPOTIFY_CLIENT_SECRET)")
    authorize_url: str = SPOTIFY_AUTHORIZE_URL
    token_url: str = SPOTIFY_TOKEN_URL
    api_base_url: str = "https://api.spotify.com/v1"
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))


class ListenerConfig(BaseModel):
    """Local callback listener. Must match the redirect URI registered with Spotify."""

    host: str = "127.0.0.1"
    port: int = Field(default=8888, ge=0, le=65535)
    path: str = "/callback"
    timeout: float = Field(default=300.0, gt=0, description="Seconds to wait for the browser login")


class LazyFavConfig(BaseModel):
    """Root configuration for LazyFav."""

    spotify: SpotifyConfig = Field(default_factory=SpotifyConfig)
    listener: ListenerConfig = Field(default_factory=ListenerConfig)

    token_file: str | None = Field(default=None, description="Override the credential file location")
    http_timeout: float = Field(default=30.0, gt=0)
    notifications: bool = Field(default=True, description="Show desktop notifications")
    reauthorize_on_refresh_failure: bool = Field(
        default=False,
        description="Start a new browser login when the refresh token is rejected",
    )
    log_level: str = Field(default="WARNING")

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.listener.host}:{self.listener.port}{self.listener.path}"

    def require_credentials(self) -> tuple[str, str]:
        """Return ``(client_id, client_secret)``.

        Raises:
            ConfigError: If either value is missing.
        """
        missing = []
        if not self.spotify.client_id:
            missing.append(CLIENT_ID_ENV)
        if not self.spotify.client_secret:
            missing.append(CLIENT_SECRET_ENV)
        if missing:
            raise ConfigError(
                f"{' and '.join(missing)} must be set. Create an app at "
                "https://developer.spotify.com/dashboard and export its credentials."
            )
        return self.spotify.client_id, self.spotify.client_secret  # type: ignore[return-value]

    @classmethod
    def load(cls, config_path: str | None = None, **overrides: Any) -> LazyFavConfig:
        """Load configuration from file, env vars, and overrides.

        Priority: overrides > env vars > config file > defaults.
        """
        data: dict[str, Any] = {}

        # 1. Load from YAML file if provided
        if config_path:
            path = Path(config_path)
            if path.exists():
                try:
                    with open(path) as f:
                        data = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    raise ConfigError(f"Could not read config file {path}: {e}") from e
                if not isinstance(data, dict):
                    raise ConfigError(f"Config file {path} must contain a mapping")

        # 2. Override from environment variables
        env_id = os.environ.get(CLIENT_ID_ENV, "").strip()
        env_secret = os.environ.get(CLIENT_SECRET_ENV, "").strip()
        env_token_file = os.environ.get("LAZYFAV_TOKEN_FILE")
        env_log_level = os.environ.get("LAZYFAV_LOG_LEVEL")

        if env_id or env_secret:
            spotify = data.get("spotify") or {}
            if not isinstance(spotify, dict):
                raise ConfigError("The 'spotify' section of the config file must be a mapping")
            if env_id:
                spotify["client_id"] = env_id
            if env_secret:
                spotify["client_secret"] = env_secret
            data["spotify"] = spotify

        if env_token_file:
            data["token_file"] = env_token_file
        if env_log_level:
            data["log_level"] = env_log_level

        # 3. Apply keyword overrides
        data.update(overrides)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
