"""Bounded, most-recent-first log of played video ids."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from .config import HISTORY_PATH
from .errors import PersistenceError
from .logging_utils import get_logger
from .storage import atomic_write_text, read_text

log = get_logger(__name__)

HISTORY_CAPACITY = 200


class HistoryLog:
    """Ordered, de-duplicated watch history persisted one id per line."""

    def __init__(self, path: Optional[Path] = None, *, capacity: int = HISTORY_CAPACITY) -> None:
        self.path = path or HISTORY_PATH
        self.capacity = capacity
        self._entries: list[str] = []

    def __len__(self) -> int:
        return len(self._entries)

    def _normalize(self, ids: Iterable[str]) -> list[str]:
        entries: list[str] = []
        seen: set[str] = set()
        for raw in ids:
            video_id = raw.strip()
            if not video_id or video_id in seen:
                continue
            seen.add(video_id)
            entries.append(video_id)
            if len(entries) >= self.capacity:
                break
        return entries

    def load(self) -> list[str]:
        """Read the history file; a missing or unreadable file yields an empty log."""

        try:
            raw = read_text(self.path)
        except PersistenceError as exc:
            log.warning("Starting with empty history: %s", exc)
            raw = None
        self._entries = self._normalize(raw.splitlines()) if raw else []
        log.debug("Loaded %d history entries from %s", len(self._entries), self.path)
        return self.list()

    def list(self) -> list[str]:
        return list(self._entries)

    def record(self, video_id: str) -> None:
        """Move *video_id* to the front and rewrite the history file."""

        video_id = video_id.strip()
        if not video_id:
            return
        if video_id in self._entries:
            self._entries.remove(video_id)
        elif len(self._entries) >= self.capacity:
            del self._entries[self.capacity - 1 :]
        self._entries.insert(0, video_id)
        self._save()

    def _save(self) -> None:
        text = "".join(f"{entry}\n" for entry in self._entries)
        try:
            atomic_write_text(self.path, text)
        except PersistenceError as exc:
            log.warning("History kept in memory only: %s", exc)


__all__ = ["HISTORY_CAPACITY", "HistoryLog"]
