"""Durable storage for the OAuth credential."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from .config import TOKEN_PATH
from .errors import NotFound, PersistenceError
from .logging_utils import get_logger
from .oauth import Credential
from .storage import atomic_write_text, read_text, remove_file

log = get_logger(__name__)

_FILE_MODE = 0o600


class TokenStore:
    """Persist a single :class:`Credential` as JSON."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or TOKEN_PATH

    def load(self) -> Credential:
        raw = read_text(self.path)
        if raw is None:
            raise NotFound(f"No stored credential at {self.path}")
        try:
            data = json.loads(raw)
            credential = Credential(
                access_token=str(data["access_token"]),
                refresh_token=str(data.get("refresh_token") or ""),
                expires_at=float(data["expires_at"]),
                scope=str(data.get("scope") or ""),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
            raise PersistenceError(f"Stored credential at {self.path} is corrupt") from exc
        if not credential.access_token:
            raise PersistenceError(f"Stored credential at {self.path} has no access token")
        log.debug("Loaded credential from %s", self.path)
        return credential

    def save(self, credential: Credential) -> None:
        text = json.dumps(credential.as_dict(), indent=2) + "\n"
        atomic_write_text(self.path, text, mode=_FILE_MODE)
        log.info("Credential saved to %s", self.path)

    def clear(self) -> None:
        if remove_file(self.path):
            log.info("Removed stored credential at %s", self.path)


__all__ = ["TokenStore"]
