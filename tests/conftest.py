"""Shared test setup."""
from __future__ import annotations

import os

# Keep test runs from appending to the user's real log file.
os.environ.setdefault("TUBEDECK_TUI_LOG_FILE", "")
