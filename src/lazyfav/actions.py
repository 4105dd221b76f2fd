"""
The one thing LazyFav does: like whatever is playing, unless it already is.
"""

from __future__ import annotations

import enum
import logging

import httpx

from lazyfav.notify import Notifier
from lazyfav.spotify import SpotifyClient

logger = logging.getLogger("lazyfav.actions")


class LikeOutcome(str, enum.Enum):
    NOTHING_PLAYING = "nothing_playing"
    ALREADY_LIKED = "already_liked"
    LIKED = "liked"
    FAILED = "failed"


async def like_current_track(client: SpotifyClient, notifier: Notifier) -> LikeOutcome:
    """Like the currently playing track and tell the user what happened.

    HTTP failures are reported as ``FAILED``; stored credentials are not
    affected by anything that happens here.
    """
    try:
        track = await client.currently_playing()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Could not fetch the playing track: %s", e)
        return LikeOutcome.FAILED

    if track is None:
        logger.info("No track currently playing.")
        return LikeOutcome.NOTHING_PLAYING

    title = f"Now playing: {track.title}"
    try:
        if await client.is_liked(track.id):
            notifier.notify(title, "Playing track has already been liked!")
            return LikeOutcome.ALREADY_LIKED
        liked = await client.like(track.id)
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Spotify request failed for %s: %s", track.id, e)
        liked = False

    if liked:
        logger.info("Liked %s (%s)", track.title, track.id)
        notifier.notify(title, "Liked track!")
        return LikeOutcome.LIKED

    notifier.notify(title, "Failed to like track.")
    return LikeOutcome.FAILED
