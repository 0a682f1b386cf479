"""Command line entry point for tubedeck-tui."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, Optional

from . import __version__
from .app import TubedeckApp
from .config import (
    CONFIG_PATH,
    HISTORY_PATH,
    TOKEN_PATH,
    AppConfig,
    load_config,
    resolve_client_credentials,
    save_config,
)
from .errors import ConfigError, PersistenceError, SpawnError
from .fetch import FetchCoordinator
from .history import HistoryLog
from .logging_utils import configure_logging, get_logger
from .navigation import NavigationStateMachine
from .oauth import DEFAULT_SCOPE, DeviceAuthClient
from .player import (
    PREFERRED_PLAYER_DEFAULT,
    PlaybackDispatcher,
    probe_dependencies,
    probe_version,
)
from .session import SessionManager
from .themes import CUSTOM_THEMES
from .token_store import TokenStore
from .youtube import YouTubeClient, watch_url

log = get_logger(__name__)

EXIT_MISSING_DEPENDENCIES = 1
EXIT_CONFIG_ERROR = 2


def _sorted_theme_names() -> list[str]:
    """Return the bundled theme catalog in a consistent order."""

    return sorted(CUSTOM_THEMES)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keyboard-driven YouTube client for the terminal")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Path to configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override TUBEDECK_TUI_LOG_LEVEL for this invocation",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help=(
            "Write logs to this file instead of the default or"
            " TUBEDECK_TUI_LOG_FILE"
        ),
    )
    parser.add_argument(
        "--player",
        dest="preferred_player",
        default=None,
        help=(
            f"Preferred media player executable (default: config value or {PREFERRED_PLAYER_DEFAULT};"
            " falls back to auto-detect)"
        ),
    )
    theme_names = ", ".join(_sorted_theme_names())
    parser.add_argument(
        "--theme",
        default=None,
        help=(
            "Select the application theme. Available options: "
            f"{theme_names}."
        ),
    )
    parser.add_argument(
        "--list-themes",
        action="store_true",
        help="List available themes and exit.",
    )
    parser.add_argument(
        "--history",
        action="store_true",
        help="Print the watch history, newest first, and exit.",
    )
    parser.add_argument(
        "--sign-out",
        action="store_true",
        help="Forget the stored credential and exit.",
    )
    parser.add_argument(
        "--save-defaults",
        action="store_true",
        help="Store the given --player and --theme in the configuration file and exit.",
    )
    parser.add_argument(
        "--check-deps",
        action="store_true",
        help="Report whether the media player and yt-dlp are installed and exit.",
    )
    return parser.parse_args(argv)


def _print_history() -> None:
    history = HistoryLog(HISTORY_PATH)
    entries = history.load()
    if not entries:
        print("Watch history is empty.")
        return
    for index, video_id in enumerate(entries, start=1):
        print(f"{index:3d}. {video_id}  {watch_url(video_id)}")


def _check_dependencies(config: AppConfig, preferred_player: Optional[str]) -> int:
    report = probe_dependencies(preferred_player, config.resolver)
    for label, path in (("Player", report.player), ("Resolver", report.resolver)):
        if path is None:
            continue
        try:
            version = probe_version(path)
        except SpawnError as exc:
            version = f"unusable: {exc.message}"
        print(f"{label}: {path} ({version})")
    for missing in report.missing:
        print(f"Missing: {missing}")
    return 0 if report.ok else EXIT_MISSING_DEPENDENCIES


def _save_defaults(config: AppConfig, args: argparse.Namespace) -> int:
    if args.theme is not None and args.theme not in CUSTOM_THEMES:
        print(f"Unknown theme: {args.theme}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if args.preferred_player is not None:
        config.player = args.preferred_player
    if args.theme is not None:
        config.theme = args.theme
    try:
        save_config(config, args.config)
    except PersistenceError as exc:
        print(exc.message, file=sys.stderr)
        return 1
    print(f"Saved defaults to {args.config}")
    return 0


def build_app(
    config: AppConfig,
    *,
    preferred_player: Optional[str] = None,
    theme: Optional[str] = None,
) -> TubedeckApp:
    """Wire the session, loaders and dispatcher into a ready-to-run app.

    Raises :class:`ConfigError` when no OAuth client is configured.
    """

    client_id, client_secret = resolve_client_credentials(config)
    auth_client = DeviceAuthClient(
        client_id,
        client_secret,
        scope=config.scope or DEFAULT_SCOPE,
    )
    session = SessionManager(
        TokenStore(TOKEN_PATH), auth_client, refresh_margin=float(config.refresh_margin)
    )
    session.restore()
    history = HistoryLog(HISTORY_PATH)
    history.load()
    youtube = YouTubeClient(
        max_results=config.max_results,
        region_code=config.region_code,
        resolver=config.resolver,
    )
    player = preferred_player or config.player or PREFERRED_PLAYER_DEFAULT
    dispatcher = PlaybackDispatcher(
        history,
        preferred_player=player,
        resolver=config.resolver,
        max_height=config.max_height,
        resolve_streams=config.resolve_streams,
    )
    machine = NavigationStateMachine(
        session, FetchCoordinator(youtube.fetch_list), dispatcher, history
    )
    return TubedeckApp(
        machine,
        theme=theme or config.theme,
        dependencies=probe_dependencies(player, config.resolver),
    )


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    if args.list_themes:
        for theme_name in _sorted_theme_names():
            print(theme_name)
        return
    configure_logging(
        level=args.log_level,
        log_file=str(args.log_file) if args.log_file is not None else None,
    )
    if args.history:
        _print_history()
        return
    if args.sign_out:
        try:
            TokenStore(TOKEN_PATH).clear()
        except PersistenceError as exc:
            print(exc.message, file=sys.stderr)
            raise SystemExit(1) from None
        print("Signed out.")
        return
    log.info("CLI invoked with config=%s", args.config)
    config = load_config(args.config)
    if args.check_deps:
        raise SystemExit(_check_dependencies(config, args.preferred_player or config.player))
    if args.save_defaults:
        code = _save_defaults(config, args)
        if code:
            raise SystemExit(code)
        return
    try:
        app = build_app(config, preferred_player=args.preferred_player, theme=args.theme)
    except ConfigError as exc:
        print(exc.message, file=sys.stderr)
        raise SystemExit(EXIT_CONFIG_ERROR) from None
    log.info("Launching Textual application")
    try:
        app.run()
    except KeyboardInterrupt:
        log.info("Keyboard interrupt received; exiting application")
        if app.is_running:
            app.exit()
        raise SystemExit(130) from None


if __name__ == "__main__":  # pragma: no cover
    main()
