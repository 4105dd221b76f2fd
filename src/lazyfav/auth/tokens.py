"""
Credential record persisted between runs.

The expiry clock is local: ``issued_at`` is stamped when LazyFav receives the
tokens, and freshness is computed against it with a safety margin so a token
is never used in the last minute of its life.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

SAFETY_MARGIN = 60
DEFAULT_EXPIRES_IN = 3600


@dataclass
class CredentialRecord:
    """Spotify access and refresh tokens plus the local issuance time."""

    access_token: str
    refresh_token: str
    expires_in: int = DEFAULT_EXPIRES_IN
    issued_at: int = 0

    def age(self, now: float | None = None) -> float:
        now = time.time() if now is None else now
        return now - self.issued_at

    def is_fresh(self, now: float | None = None) -> bool:
        """True while the token has at least ``SAFETY_MARGIN`` seconds left."""
        return self.age(now) <= self.expires_in - SAFETY_MARGIN

    def seconds_remaining(self, now: float | None = None) -> int:
        return int(self.expires_in - SAFETY_MARGIN - self.age(now))

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "timestamp": self.issued_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> CredentialRecord:
        """Decode the on-disk schema.

        Raises:
            ValueError: If the data is not an object with the expected fields.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        expires_in = data.get("expires_in")
        issued_at = data.get("timestamp")

        if not isinstance(access_token, str) or not access_token:
            raise ValueError("missing access_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise ValueError("missing refresh_token")
        # bool is an int subclass, reject it explicitly
        for name, value in (("expires_in", expires_in), ("timestamp", issued_at)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"invalid {name}: {value!r}")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            issued_at=issued_at,
        )
