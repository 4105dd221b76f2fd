"""
LazyFav — like the Spotify track that is playing right now.

Logs in once through the browser, keeps the credentials fresh on disk,
and likes the current track on every run.
"""

__version__ = "0.3.0"
__all__ = ["SessionOrchestrator", "__version__"]

from lazyfav.session import SessionOrchestrator  # noqa: E402
