"""
Spotify Web API — the three calls LazyFav needs.

Currently playing track, "is it in Liked Songs", and "add to Liked Songs".
Non-success responses on the read calls are logged and treated as
"nothing to do" rather than raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger("lazyfav.spotify")

_API_BASE_URL = "https://api.spotify.com/v1"


@dataclass
class Track:
    """A playing track, reduced to what the notification shows."""

    id: str
    name: str
    artists: list[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        return f"{self.name} by {', '.join(self.artists)}" if self.artists else self.name

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> Track:
        return cls(
            id=item["id"],
            name=item.get("name", ""),
            artists=[a.get("name", "") for a in item.get("artists") or [] if isinstance(a, dict)],
        )


class SpotifyClient:
    """Minimal authenticated client for the Spotify Web API.

    Usage::

        async with SpotifyClient(access_token) as client:
            track = await client.currently_playing()
            if track and not await client.is_liked(track.id):
                await client.like(track.id)
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = _API_BASE_URL,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def __aenter__(self) -> SpotifyClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        return await client.request(
            method,
            f"{self.base_url}/{path.lstrip('/')}",
            headers={"Authorization": f"Bearer {self.access_token}"},
            **kwargs,
        )

    async def currently_playing(self) -> Track | None:
        """The track on the user's active device, or None."""
        resp = await self._request("GET", "me/player/currently-playing")

        if resp.status_code == 204:
            # no track playing
            return None
        if not resp.is_success:
            logger.error("Fetch error (%d): %s", resp.status_code, resp.text)
            return None

        payload = resp.json()
        if not isinstance(payload, dict):
            logger.error("Unexpected currently-playing response: %s", resp.text)
            return None

        item = payload.get("item")
        # podcasts and ads come back without a track id
        if not isinstance(item, dict) or not item.get("id"):
            return None
        return Track.from_api(item)

    async def is_liked(self, track_id: str) -> bool:
        resp = await self._request("GET", "me/tracks/contains", params={"ids": track_id})

        if not resp.is_success:
            logger.error("Fetch error (%d): %s", resp.status_code, resp.text)
            return False

        data = resp.json()
        if not isinstance(data, list):
            logger.error("Unexpected contains response: %s", resp.text)
            return False
        return bool(data[0]) if data else False

    async def like(self, track_id: str) -> bool:
        """Save the track to Liked Songs. Returns whether Spotify accepted it."""
        resp = await self._request("PUT", "me/tracks", json={"ids": [track_id]})
        if not resp.is_success:
            logger.error("Like failed (%d): %s", resp.status_code, resp.text)
        return resp.is_success
