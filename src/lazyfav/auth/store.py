"""
Token store — the single credential file in the per-user data directory.

Reads degrade gracefully (anything unreadable means "not logged in"), writes
do not: losing a freshly issued token silently would force a new browser login
on the next run, so write failures surface as :class:`StorageError`.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
from pathlib import Path

from lazyfav.auth.tokens import CredentialRecord
from lazyfav.errors import StorageError

logger = logging.getLogger("lazyfav.auth.store")

_APP_DIR = "lazyfav"
_TOKEN_FILENAME = "spotify_tokens.json"


def default_data_dir() -> Path:
    """Per-user application-data directory for LazyFav."""
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA")
        root = Path(base) if base else Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        root = Path.home() / "Library" / "Application Support"
    else:
        base = os.environ.get("XDG_DATA_HOME")
        root = Path(base) if base else Path.home() / ".local" / "share"
    return root / _APP_DIR


def default_token_path() -> Path:
    return default_data_dir() / _TOKEN_FILENAME


class TokenStore:
    """Load and save the one :class:`CredentialRecord` of this installation."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else default_token_path()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> CredentialRecord | None:
        """Return the stored record, or None if there is no usable one."""
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            logger.debug("No token file at %s", self.path)
            return None
        except OSError as e:
            logger.warning("Could not read token file %s: %s", self.path, e)
            return None

        try:
            record = CredentialRecord.from_dict(json.loads(raw.decode("utf-8")))
        except ValueError as e:
            # UnicodeDecodeError and json.JSONDecodeError are ValueErrors too
            logger.warning("Ignoring unreadable token file %s: %s", self.path, e)
            return None

        logger.debug("Loaded token from %s", self.path)
        return record

    def save(self, record: CredentialRecord) -> None:
        """Write the record atomically (temp file + rename).

        Raises:
            StorageError: On any filesystem failure.
        """
        data_json = json.dumps(record.to_dict(), indent=2)
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".tokens-", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data_json)
                fh.flush()
                os.fsync(fh.fileno())
            # Restrict file permissions to owner only
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"Could not save tokens to {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_name)

        logger.debug("Saved token to %s", self.path)
