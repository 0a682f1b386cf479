"""Player detection, stream resolution and detached playback dispatch."""
from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from .errors import SpawnError
from .history import HistoryLog
from .logging_utils import get_logger
from .youtube import watch_url

PREFERRED_PLAYER_DEFAULT = "mpv"
DEFAULT_PLAYER_CANDIDATES: Sequence[str] = ("mpv", "vlc", "ffplay")
DEFAULT_RESOLVER = "yt-dlp"
DEFAULT_MAX_HEIGHT = 1080

PLAYER_PROBE_TIMEOUT_ENV = "TUBEDECK_TUI_PLAYER_PROBE_TIMEOUT"
DEFAULT_PLAYER_PROBE_TIMEOUT = 10.0

log = get_logger(__name__)


@dataclass(slots=True)
class PlayerCommand:
    """Describe a player invocation."""

    executable: str
    args: list[str]

    def as_sequence(self) -> list[str]:
        return [self.executable, *self.args]


@dataclass(slots=True)
class PlaybackLaunch:
    """A spawned player process; the dispatcher never waits on it."""

    video_id: str
    pid: Optional[int]
    command: PlayerCommand


@dataclass(slots=True)
class DependencyReport:
    player: Optional[str]
    resolver: Optional[str]
    missing: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


def detect_player(
    preferred: Optional[str] = None,
    *,
    candidates: Iterable[str] = DEFAULT_PLAYER_CANDIDATES,
) -> Optional[str]:
    """Return the path to the first available player executable."""

    search_order: list[str] = []
    if preferred:
        search_order.append(str(preferred))
    for candidate in candidates:
        if candidate not in search_order:
            search_order.append(candidate)
    for executable in search_order:
        path = shutil.which(executable)
        if path:
            log.debug("Selected player executable: %s (from candidate %s)", path, executable)
            return path
        log.debug("Player candidate %s not found on PATH", executable)
    return None


def stream_formats(max_height: int) -> tuple[str, str]:
    """Return the preferred and fallback yt-dlp format selectors."""

    return f"best[height<={max_height}]", f"best[height<={max_height}]/best"


def _is_mpv(executable: str) -> bool:
    return Path(executable).stem.lower() == "mpv"


def build_player_command(
    executable: str,
    target: str,
    *,
    resolver: Optional[str] = None,
    max_height: int = DEFAULT_MAX_HEIGHT,
) -> PlayerCommand:
    """Construct a player command for *target*.

    When *resolver* is given the player is mpv and *target* is a watch URL:
    mpv's ytdl hook runs the resolver itself, so resolution happens inside the
    detached process.
    """

    args: list[str] = []
    if _is_mpv(executable):
        args.extend(["--force-window=immediate", "--no-terminal"])
        if resolver is not None:
            _, fallback = stream_formats(max_height)
            args.append(f"--ytdl-format={fallback}")
            args.append(f"--script-opts=ytdl_hook-ytdl_path={resolver}")
    elif Path(executable).stem.lower() == "ffplay":
        args.extend(["-autoexit", "-loglevel", "error"])
    command = PlayerCommand(executable=executable, args=[*args, target])
    log.debug("Built player command: %s", command.as_sequence())
    return command


async def _run_resolver(resolver: str, selector: str, url: str) -> Optional[str]:
    process = await asyncio.create_subprocess_exec(
        resolver,
        "--format",
        selector,
        "--get-url",
        url,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        log.debug(
            "%s --format %s failed (%s): %s",
            resolver,
            selector,
            process.returncode,
            stderr.decode("utf8", errors="replace").strip(),
        )
        return None
    lines = [line.strip() for line in stdout.decode("utf8", errors="replace").splitlines()]
    return next((line for line in lines if line), None)


async def resolve_stream_url(
    video_id: str, *, resolver: str, max_height: int = DEFAULT_MAX_HEIGHT
) -> str:
    """Ask the resolver for a direct stream URL, retrying with a looser format."""

    url = watch_url(video_id)
    for selector in stream_formats(max_height):
        try:
            stream = await _run_resolver(resolver, selector, url)
        except OSError as exc:
            raise SpawnError(f"Failed to run {resolver}: {exc}") from exc
        if stream:
            log.debug("Resolved %s with format %s", video_id, selector)
            return stream
    raise SpawnError(f"Could not resolve a stream for {video_id}")


def _spawn_detached(command: PlayerCommand) -> subprocess.Popen:
    return subprocess.Popen(
        command.as_sequence(),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        env=os.environ.copy(),
    )


class PlaybackDispatcher:
    """Launch the external player for a video and record it in the history."""

    def __init__(
        self,
        history: HistoryLog,
        *,
        preferred_player: Optional[str] = PREFERRED_PLAYER_DEFAULT,
        resolver: str = DEFAULT_RESOLVER,
        max_height: int = DEFAULT_MAX_HEIGHT,
        resolve_streams: bool = False,
        spawn: Callable[[PlayerCommand], subprocess.Popen] = _spawn_detached,
    ) -> None:
        self._history = history
        self.preferred_player = preferred_player
        self.resolver = resolver
        self.max_height = max_height
        self.resolve_streams = resolve_streams
        self._spawn = spawn
        self._processes: set[subprocess.Popen] = set()

    @property
    def running(self) -> int:
        """Number of launched players that have not been seen to exit."""

        self._reap()
        return len(self._processes)

    def _reap(self) -> None:
        for process in list(self._processes):
            if process.poll() is not None:
                log.debug("Player pid %s exited with %s", process.pid, process.returncode)
                self._processes.discard(process)

    async def play(self, video_id: str) -> PlaybackLaunch:
        """Spawn the player for *video_id* without waiting for it to exit."""

        self._reap()
        executable = detect_player(self.preferred_player)
        if executable is None:
            raise SpawnError("No supported media player found (mpv, vlc, ffplay)")
        resolver = shutil.which(self.resolver)
        if resolver is None:
            raise SpawnError(f"{self.resolver} not found; it is required to play videos")
        if _is_mpv(executable) and not self.resolve_streams:
            command = build_player_command(
                executable, watch_url(video_id), resolver=resolver, max_height=self.max_height
            )
        else:
            stream = await resolve_stream_url(
                video_id, resolver=resolver, max_height=self.max_height
            )
            command = build_player_command(executable, stream, max_height=self.max_height)
        try:
            process = self._spawn(command)
        except OSError as exc:
            log.error("Failed to launch %s: %s", command.executable, exc)
            raise SpawnError(f"Failed to launch {Path(command.executable).name}: {exc}") from exc
        self._processes.add(process)
        pid = process.pid
        log.info("Launched %s for %s (pid %s)", Path(command.executable).name, video_id, pid)
        self._history.record(video_id)
        return PlaybackLaunch(video_id=video_id, pid=pid, command=command)


def _player_probe_timeout() -> float:
    """Return the timeout to use for player probes."""

    raw_value = os.getenv(PLAYER_PROBE_TIMEOUT_ENV)
    if raw_value is None:
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    try:
        timeout = float(raw_value)
    except ValueError:
        log.warning(
            "Invalid %s value %r; using default %.1f seconds",
            PLAYER_PROBE_TIMEOUT_ENV,
            raw_value,
            DEFAULT_PLAYER_PROBE_TIMEOUT,
        )
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    if timeout <= 0:
        return DEFAULT_PLAYER_PROBE_TIMEOUT
    return timeout


def probe_version(executable: str) -> str:
    """Run ``executable --version`` and return the first line of its output."""

    timeout = _player_probe_timeout()
    try:
        result = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise SpawnError(
            f"{Path(executable).name} --version timed out after {timeout:.1f} seconds. "
            f"Increase the timeout via the {PLAYER_PROBE_TIMEOUT_ENV} environment variable."
        ) from exc
    except OSError as exc:
        raise SpawnError(f"Failed to execute {executable}: {exc}") from exc
    if result.returncode != 0:
        output = result.stderr.strip() or result.stdout.strip()
        raise SpawnError(
            f"{Path(executable).name} --version exited with {result.returncode}: {output}"
        )
    output = result.stdout.strip() or result.stderr.strip()
    return output.splitlines()[0] if output else Path(executable).name


def probe_dependencies(
    preferred_player: Optional[str] = PREFERRED_PLAYER_DEFAULT,
    resolver: str = DEFAULT_RESOLVER,
) -> DependencyReport:
    """Report which of the player and resolver are available on PATH."""

    player_path = detect_player(preferred_player)
    resolver_path = shutil.which(resolver)
    missing: list[str] = []
    if player_path is None:
        missing.append("media player (mpv, vlc or ffplay)")
    if resolver_path is None:
        missing.append(resolver)
    if missing:
        log.warning("Missing external tools: %s", ", ".join(missing))
    return DependencyReport(player=player_path, resolver=resolver_path, missing=missing)


__all__ = [
    "DependencyReport",
    "PREFERRED_PLAYER_DEFAULT",
    "PlaybackDispatcher",
    "PlaybackLaunch",
    "PlayerCommand",
    "build_player_command",
    "detect_player",
    "probe_dependencies",
    "probe_version",
    "resolve_stream_url",
    "stream_formats",
]
