"""Logging helpers for :mod:`tubedeck_tui`.

Every module logs through ``get_logger(__name__)``, which nests below the
``tubedeck_tui`` logger. Records go to stderr until the TUI takes over the
terminal, to an optional log file, and into a bounded in-memory buffer that
feeds the F2 log panel.
"""

from __future__ import annotations

import logging
import os
import threading
import weakref
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .log_viewer import LogViewer

LOGGER_NAME = "tubedeck_tui"
LEVEL_ENV = "TUBEDECK_TUI_LOG_LEVEL"
FILE_ENV = "TUBEDECK_TUI_LOG_FILE"
DEFAULT_LOG_PATH = Path.home() / ".cache" / "tubedeck_tui.log"
RECENT_CAPACITY = 300

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _RecentRecords(logging.Handler):
    """Remember the latest formatted records and mirror them to the panel."""

    def __init__(self, capacity: int = RECENT_CAPACITY) -> None:
        super().__init__()
        self._recent: deque[str] = deque(maxlen=capacity)
        self._panel: Optional[weakref.ReferenceType["LogViewer"]] = None
        self._guard = threading.RLock()

    def attach(self, panel: Optional["LogViewer"]) -> None:
        with self._guard:
            self._panel = None if panel is None else weakref.ref(panel)
            backlog = list(self._recent)
        if panel is not None:
            panel.replace_messages(backlog)

    def _current_panel(self) -> Optional["LogViewer"]:
        with self._guard:
            ref = self._panel
        return None if ref is None else ref()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:  # pragma: no cover - reported through handleError
            self.handleError(record)
            return
        with self._guard:
            self._recent.append(line)
        panel = self._current_panel()
        if panel is None:
            return
        try:
            _deliver(panel, line)
        except Exception:  # pragma: no cover - the UI may be shutting down
            self.handleError(record)


def _deliver(panel: "LogViewer", line: str) -> None:
    # Textual widgets may only be touched from the app's own thread.
    app = getattr(panel, "app", None)
    owner = getattr(app, "_thread_id", None)
    if owner is not None and owner != threading.get_ident():
        app.call_from_thread(panel.append_message, line)
    else:
        panel.append_message(line)


@dataclass
class _Installed:
    level: int = logging.INFO
    console: Optional[logging.Handler] = None
    file: Optional[logging.FileHandler] = None
    recent: Optional[_RecentRecords] = None
    path: Optional[Path] = None

    @property
    def ready(self) -> bool:
        return self.recent is not None

    def handlers(self) -> Iterable[logging.Handler]:
        return [h for h in (self.console, self.file, self.recent) if h is not None]


_installed = _Installed()


def _formatter() -> logging.Formatter:
    return logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)


def parse_level(value: str, default: int = logging.INFO) -> int:
    """Turn a level name or number into a logging level, else *default*."""

    text = value.strip().upper()
    if text.isdigit():
        number = int(text)
        return number if number <= logging.CRITICAL else default
    named = logging.getLevelName(text)
    return named if isinstance(named, int) else default


def _open_log_file(logger: logging.Logger, destination: str) -> None:
    previous = _installed.file
    if previous is not None:
        logger.removeHandler(previous)
        previous.close()
        _installed.file = None
        _installed.path = None
    if not destination:
        return
    path = Path(destination).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf8")
    except OSError as exc:
        logger.warning("Cannot write log file %s: %s", path, exc)
        return
    handler.setFormatter(_formatter())
    logger.addHandler(handler)
    _installed.file = handler
    _installed.path = path
    logger.debug("Logging to %s", path)


def _install(logger: logging.Logger) -> None:
    logger.propagate = False
    console = logging.StreamHandler()
    recent = _RecentRecords()
    for handler in (console, recent):
        handler.setFormatter(_formatter())
        logger.addHandler(handler)
    _installed.console = console
    _installed.recent = recent


def configure_logging(
    *,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the package logger and return it.

    Explicit arguments win over ``TUBEDECK_TUI_LOG_LEVEL`` and
    ``TUBEDECK_TUI_LOG_FILE``. The file destination is chosen once, on the
    first call, unless *log_file* is passed again; an empty string turns file
    output off. Repeated calls never add duplicate handlers.
    """

    logger = logging.getLogger(LOGGER_NAME)
    if level is None:
        level = os.getenv(LEVEL_ENV)
    resolved = parse_level(level) if level is not None else _installed.level

    if not _installed.ready:
        _install(logger)
        if log_file is None:
            log_file = os.getenv(FILE_ENV, str(DEFAULT_LOG_PATH))
    if log_file is not None:
        _open_log_file(logger, log_file)

    _installed.level = resolved
    logger.setLevel(resolved)
    for handler in _installed.handlers():
        handler.setLevel(resolved)
    return logger


def reset_logging() -> None:
    """Detach and close every handler on the package logger."""

    global _installed
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    _installed = _Installed()


def _package_logger() -> logging.Logger:
    if not _installed.ready:
        return configure_logging()
    return logging.getLogger(LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the logger for *name*, nested below ``tubedeck_tui``."""

    root = _package_logger()
    if not name or name == LOGGER_NAME:
        return root
    if name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return root.getChild(name)


def get_log_file_path() -> Optional[Path]:
    return _installed.path


def detach_stream_handler() -> None:
    """Stop writing to stderr once the TUI owns the terminal."""

    console = _installed.console
    if console is not None:
        logging.getLogger(LOGGER_NAME).removeHandler(console)
        _installed.console = None


def register_log_viewer(viewer: Optional["LogViewer"]) -> None:
    """Route new records to *viewer*, replaying what was logged before."""

    _package_logger()
    recent = _installed.recent
    if recent is not None:
        recent.attach(viewer)


__all__ = [
    "LOGGER_NAME",
    "configure_logging",
    "detach_stream_handler",
    "get_log_file_path",
    "get_logger",
    "parse_level",
    "register_log_viewer",
    "reset_logging",
]
