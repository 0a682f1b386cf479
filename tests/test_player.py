import asyncio
import shutil
import subprocess
from pathlib import Path

import pytest

from tubedeck_tui import player as player_module
from tubedeck_tui.errors import SpawnError
from tubedeck_tui.history import HistoryLog
from tubedeck_tui.player import (
    PlaybackDispatcher,
    PlayerCommand,
    build_player_command,
    detect_player,
    probe_dependencies,
    probe_version,
    stream_formats,
)


class FakeProcess:
    def __init__(self, pid: int) -> None:
        self.pid = pid
        self.returncode = None

    def poll(self):
        return self.returncode


def _which_from(available: set[str]):
    def fake_which(cmd: str):
        return f"/usr/bin/{cmd}" if cmd in available else None

    return fake_which


def test_detect_player_prefers_preferred(monkeypatch):
    calls = []

    def fake_which(cmd: str):
        calls.append(cmd)
        return f"/usr/bin/{cmd}" if cmd in {"mpv", "vlc"} else None

    monkeypatch.setattr(shutil, "which", fake_which)
    assert detect_player("vlc") == "/usr/bin/vlc"
    assert calls[0] == "vlc"


def test_detect_player_falls_back_to_candidates(monkeypatch):
    monkeypatch.setattr(shutil, "which", _which_from({"ffplay"}))
    assert detect_player("celluloid") == "/usr/bin/ffplay"


def test_stream_formats_cap_height():
    assert stream_formats(720) == ("best[height<=720]", "best[height<=720]/best")


def test_build_player_command_lets_mpv_run_resolver():
    command = build_player_command(
        "/usr/bin/mpv",
        "https://www.youtube.com/watch?v=abc",
        resolver="/usr/bin/yt-dlp",
        max_height=720,
    )
    assert command.args[-1] == "https://www.youtube.com/watch?v=abc"
    assert "--ytdl-format=best[height<=720]/best" in command.args
    assert "--script-opts=ytdl_hook-ytdl_path=/usr/bin/yt-dlp" in command.args


def test_build_player_command_plain_for_vlc():
    command = build_player_command("/usr/bin/vlc", "https://cdn.example/stream")
    assert command == PlayerCommand(executable="/usr/bin/vlc", args=["https://cdn.example/stream"])


def test_play_with_mpv_spawns_detached_and_records_history(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(shutil, "which", _which_from({"mpv", "yt-dlp"}))
    spawned: list[PlayerCommand] = []

    def fake_spawn(command: PlayerCommand):
        spawned.append(command)
        return FakeProcess(4242)

    history = HistoryLog(tmp_path / "history.txt")
    dispatcher = PlaybackDispatcher(history, spawn=fake_spawn)

    launch = asyncio.run(dispatcher.play("abc123"))

    assert launch.pid == 4242
    assert spawned[0].executable == "/usr/bin/mpv"
    assert spawned[0].args[-1] == "https://www.youtube.com/watch?v=abc123"
    assert history.list() == ["abc123"]


def test_exited_players_are_reaped_on_next_play(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(shutil, "which", _which_from({"mpv", "yt-dlp"}))
    first_process, second_process = FakeProcess(10), FakeProcess(11)
    processes = [first_process, second_process]
    dispatcher = PlaybackDispatcher(
        HistoryLog(tmp_path / "history.txt"), spawn=lambda command: processes.pop(0)
    )

    first = asyncio.run(dispatcher.play("one"))
    assert dispatcher.running == 1

    first_process.returncode = 0
    asyncio.run(dispatcher.play("two"))

    assert first.pid == 10
    assert dispatcher.running == 1
    second_process.returncode = 0
    assert dispatcher.running == 0


def test_play_resolves_stream_for_other_players(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(shutil, "which", _which_from({"vlc", "yt-dlp"}))
    selectors: list[str] = []

    async def fake_resolver(resolver: str, selector: str, url: str):
        selectors.append(selector)
        return None if len(selectors) == 1 else "https://cdn.example/video.mp4"

    monkeypatch.setattr(player_module, "_run_resolver", fake_resolver)
    spawned: list[PlayerCommand] = []
    dispatcher = PlaybackDispatcher(
        HistoryLog(tmp_path / "history.txt"),
        preferred_player="vlc",
        max_height=480,
        spawn=lambda command: spawned.append(command) or FakeProcess(1),
    )

    asyncio.run(dispatcher.play("xyz"))

    assert selectors == ["best[height<=480]", "best[height<=480]/best"]
    assert spawned[0].args == ["https://cdn.example/video.mp4"]


def test_unresolvable_stream_raises_spawn_error(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(shutil, "which", _which_from({"vlc", "yt-dlp"}))

    async def failing_resolver(resolver: str, selector: str, url: str):
        return None

    monkeypatch.setattr(player_module, "_run_resolver", failing_resolver)
    history = HistoryLog(tmp_path / "history.txt")
    dispatcher = PlaybackDispatcher(history, preferred_player="vlc", spawn=lambda _: None)

    with pytest.raises(SpawnError):
        asyncio.run(dispatcher.play("xyz"))
    assert history.list() == []


def test_missing_player_raises_spawn_error(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(shutil, "which", _which_from({"yt-dlp"}))
    history = HistoryLog(tmp_path / "history.txt")

    with pytest.raises(SpawnError):
        asyncio.run(PlaybackDispatcher(history).play("abc"))
    assert history.list() == []


def test_missing_resolver_raises_spawn_error(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(shutil, "which", _which_from({"mpv"}))

    with pytest.raises(SpawnError) as excinfo:
        asyncio.run(PlaybackDispatcher(HistoryLog(tmp_path / "h.txt")).play("abc"))
    assert "yt-dlp" in excinfo.value.message


def test_spawn_failure_is_reported_and_not_recorded(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(shutil, "which", _which_from({"mpv", "yt-dlp"}))

    def broken_spawn(command: PlayerCommand):
        raise PermissionError("not executable")

    history = HistoryLog(tmp_path / "history.txt")

    with pytest.raises(SpawnError):
        asyncio.run(PlaybackDispatcher(history, spawn=broken_spawn).play("abc"))
    assert history.list() == []


def test_probe_dependencies_lists_missing_tools(monkeypatch):
    monkeypatch.setattr(shutil, "which", _which_from({"mpv"}))

    report = probe_dependencies("mpv", "yt-dlp")

    assert report.player == "/usr/bin/mpv"
    assert report.resolver is None
    assert report.missing == ["yt-dlp"]
    assert not report.ok


def test_probe_version_returns_first_line(monkeypatch):
    def fake_run(cmd, capture_output, text, timeout, check):
        return subprocess.CompletedProcess(cmd, 0, stdout="mpv 0.38.0 Copyright\nmore\n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert probe_version("/usr/bin/mpv") == "mpv 0.38.0 Copyright"


def test_probe_version_timeout_mentions_env(monkeypatch):
    def fake_run(cmd, capture_output, text, timeout, check):
        raise subprocess.TimeoutExpired(cmd, timeout)

    monkeypatch.setattr(subprocess, "run", fake_run)
    monkeypatch.setenv(player_module.PLAYER_PROBE_TIMEOUT_ENV, "2")

    with pytest.raises(SpawnError) as excinfo:
        probe_version("/usr/bin/mpv")
    assert player_module.PLAYER_PROBE_TIMEOUT_ENV in excinfo.value.message
