"""Crash-safe file writes for the small state files kept under the config dir."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from .errors import PersistenceError
from .logging_utils import get_logger

log = get_logger(__name__)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def atomic_write_text(path: Path, text: str, *, mode: Optional[int] = None) -> None:
    """Replace *path* with *text* so readers never observe a partial file.

    The data goes to a temporary file in the destination directory which is
    flushed, synced and renamed over *path*. The temporary file is removed
    when anything fails before the rename.
    """

    try:
        _ensure_parent(path)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
    except OSError as exc:
        raise PersistenceError(f"Cannot write {path}: {exc}") from exc

    temp_path = Path(handle.name)
    try:
        with handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except OSError as exc:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:  # pragma: no cover - best effort cleanup
            log.warning("Could not remove temporary file %s", temp_path)
        raise PersistenceError(f"Cannot write {path}: {exc}") from exc
    log.debug("Wrote %d characters to %s", len(text), path)


def read_text(path: Path) -> Optional[str]:
    """Return the content of *path*, or ``None`` when it does not exist."""

    try:
        return path.read_text(encoding="utf8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise PersistenceError(f"Cannot read {path}: {exc}") from exc


def remove_file(path: Path) -> bool:
    """Delete *path*; return whether a file was removed."""

    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise PersistenceError(f"Cannot remove {path}: {exc}") from exc
    return True


__all__ = ["atomic_write_text", "read_text", "remove_file"]
