"""Textual widget showing the application's recent log lines."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Optional

from textual.widgets import Static

from .logging_utils import register_log_viewer


class LogViewer(Static):
    """Rolling log panel fed by the in-app logging handler."""

    DEFAULT_MAX_LINES = 300

    def __init__(self, *, max_lines: int = DEFAULT_MAX_LINES, id: Optional[str] = None) -> None:
        super().__init__("", id=id, markup=False)
        self._messages: Deque[str] = deque(maxlen=max_lines)

    def on_mount(self) -> None:
        register_log_viewer(self)
        self._refresh_view()

    def on_unmount(self) -> None:
        register_log_viewer(None)

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._messages)

    def append_message(self, message: str) -> None:
        self._messages.append(message)
        self._refresh_view()

    def replace_messages(self, messages: Iterable[str]) -> None:
        """Replace the buffer with *messages*, keeping only the newest lines."""

        self._messages.clear()
        self._messages.extend(messages)
        self._refresh_view()

    def _refresh_view(self) -> None:
        self.update("\n".join(self._messages) if self._messages else "No log messages yet.")
        if self.is_mounted:
            self.call_after_refresh(self.scroll_end, animate=False)


__all__ = ["LogViewer"]
