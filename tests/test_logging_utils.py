"""Tests for :mod:`tubedeck_tui.logging_utils`."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from tubedeck_tui import logging_utils


@pytest.fixture(autouse=True)
def fresh_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("TUBEDECK_TUI_LOG_LEVEL", raising=False)
    monkeypatch.setenv("TUBEDECK_TUI_LOG_FILE", "")
    logging_utils.reset_logging()
    yield
    logging_utils.reset_logging()
    logging_utils.configure_logging(log_file="")


class RecordingViewer:
    """Duck-typed stand-in for the LogViewer widget."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def replace_messages(self, messages) -> None:
        self.lines = list(messages)

    def append_message(self, message: str) -> None:
        self.lines.append(message)


def test_file_logging_writes_formatted_records(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "tubedeck.log"
    logging_utils.configure_logging(level="DEBUG", log_file=str(log_path))

    logging_utils.get_logger("tubedeck_tui.session").debug("refreshing %s", "now")
    for handler in logging.getLogger(logging_utils.LOGGER_NAME).handlers:
        handler.flush()

    assert logging_utils.get_log_file_path() == log_path
    content = log_path.read_text(encoding="utf8")
    assert "[DEBUG] tubedeck_tui.session: refreshing now" in content


def test_empty_log_file_disables_file_output() -> None:
    logging_utils.configure_logging(log_file="")

    assert logging_utils.get_log_file_path() is None


def test_environment_level_is_used(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBEDECK_TUI_LOG_LEVEL", "warning")

    logger = logging_utils.configure_logging()

    assert logger.level == logging.WARNING


def test_invalid_level_falls_back_to_info() -> None:
    logger = logging_utils.configure_logging(level="chatty")

    assert logger.level == logging.INFO


def test_repeated_configuration_does_not_duplicate_handlers() -> None:
    first = logging_utils.configure_logging()
    count = len(first.handlers)

    second = logging_utils.configure_logging(level="DEBUG")

    assert second is first
    assert len(second.handlers) == count
    assert second.level == logging.DEBUG


def test_get_logger_nests_under_package_logger() -> None:
    assert logging_utils.get_logger("fetch").name == "tubedeck_tui.fetch"
    assert logging_utils.get_logger("tubedeck_tui.app").name == "tubedeck_tui.app"
    assert logging_utils.get_logger().name == "tubedeck_tui"


def test_viewer_receives_buffered_and_new_messages() -> None:
    logger = logging_utils.configure_logging()
    logger.info("before mount")
    viewer = RecordingViewer()

    logging_utils.register_log_viewer(viewer)  # type: ignore[arg-type]
    logger.info("after mount")

    assert any("before mount" in line for line in viewer.lines)
    assert viewer.lines[-1].endswith("after mount")

    logging_utils.register_log_viewer(None)
    logger.info("after unmount")
    assert not any("after unmount" in line for line in viewer.lines)


def test_detach_stream_handler_removes_stderr_output() -> None:
    logger = logging_utils.configure_logging()

    logging_utils.detach_stream_handler()

    assert not any(
        type(handler) is logging.StreamHandler for handler in logger.handlers
    )
