"""Configuration management for tubedeck-tui."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigError, PersistenceError
from .logging_utils import get_logger
from .storage import atomic_write_text, read_text

CONFIG_DIR = Path.home() / ".config" / "tubedeck_tui"
CONFIG_PATH = CONFIG_DIR / "config.yaml"
TOKEN_PATH = CONFIG_DIR / "token.json"
HISTORY_PATH = CONFIG_DIR / "history.txt"

CLIENT_ID_ENV = ("TUBEDECK_CLIENT_ID", "GOOGLE_CLIENT_ID")
CLIENT_SECRET_ENV = ("TUBEDECK_CLIENT_SECRET", "GOOGLE_CLIENT_SECRET")

# Shared OAuth client used when neither the environment nor config.yaml
# provide one. Packagers fill these in for their distribution.
DEFAULT_CLIENT_ID = ""
DEFAULT_CLIENT_SECRET = ""

SETUP_INSTRUCTIONS = """\
No OAuth client is configured. Set the following environment variables:
  TUBEDECK_CLIENT_ID=your-client-id
  TUBEDECK_CLIENT_SECRET=your-client-secret
or add client_id / client_secret to {config_path}.

To get these credentials:
  1. Go to https://console.cloud.google.com/
  2. Create a project and enable YouTube Data API v3
  3. Create OAuth 2.0 credentials (TVs and Limited Input devices)
  4. Export the values above and start tubedeck-tui again"""

log = get_logger(__name__)


@dataclass(slots=True)
class AppConfig:
    """Top level application configuration."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    scope: Optional[str] = None
    player: Optional[str] = None
    resolver: str = "yt-dlp"
    max_height: int = 1080
    resolve_streams: bool = False
    refresh_margin: int = 60
    max_results: int = 25
    region_code: Optional[str] = None
    theme: Optional[str] = None


_STRING_KEYS = ("client_id", "client_secret", "scope", "player", "resolver", "region_code", "theme")
_POSITIVE_INT_KEYS = ("max_height", "refresh_margin", "max_results")


def _clean_scalar(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return value


def _parse_bool(value: object, *, default: bool) -> bool:
    """Coerce *value* into a boolean flag."""

    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "yes", "on", "1"}:
            return True
        if normalized in {"false", "no", "off", "0"}:
            return False
    return default


def _parse_config(raw: str) -> dict[str, object]:
    """Parse the flat ``key: value`` subset of YAML used by config.yaml.

    A JSON object is accepted as well.
    """

    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        pass
    else:
        return data if isinstance(data, dict) else {}

    result: dict[str, object] = {}
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, separator, remainder = stripped.partition(":")
        if not separator:
            log.warning("Ignoring malformed configuration line: %s", stripped)
            continue
        result[key.strip()] = _clean_scalar(remainder)
    return result


def _dump_config(config: AppConfig) -> str:
    lines: list[str] = []
    for key in _STRING_KEYS:
        value = getattr(config, key)
        if value:
            lines.append(f"{key}: {value}")
    for key in _POSITIVE_INT_KEYS:
        lines.append(f"{key}: {getattr(config, key)}")
    lines.append(f"resolve_streams: {'true' if config.resolve_streams else 'false'}")
    lines.append("")
    return "\n".join(lines)


def _apply(data: dict[str, object]) -> AppConfig:
    config = AppConfig()
    for key in _STRING_KEYS:
        value = data.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            setattr(config, key, text)
    for key in _POSITIVE_INT_KEYS:
        value = data.get(key)
        if value is None or value == "":
            continue
        try:
            number = int(str(value).strip())
        except ValueError:
            number = 0
        if number <= 0:
            log.warning("Ignoring invalid %s value %r; using default", key, value)
            continue
        setattr(config, key, number)
    config.resolve_streams = _parse_bool(data.get("resolve_streams"), default=False)
    return config


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load configuration from *path* or return defaults."""

    config_path = path or CONFIG_PATH
    try:
        raw = read_text(config_path)
    except PersistenceError as exc:
        log.warning("%s; using defaults", exc)
        return AppConfig()
    if raw is None:
        log.info("Configuration file missing at %s; using defaults", config_path)
        return AppConfig()
    log.debug("Loading configuration from %s", config_path)
    config = _apply(_parse_config(raw))
    log.info("Loaded configuration from %s", config_path)
    return config


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    """Persist *config* to disk at *path*."""

    config_path = path or CONFIG_PATH
    atomic_write_text(config_path, _dump_config(config), mode=0o600)
    log.info("Configuration saved to %s", config_path)


def _first_env(names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value and value.strip():
            return value.strip()
    return None


def resolve_client_credentials(config: AppConfig) -> tuple[str, Optional[str]]:
    """Return ``(client_id, client_secret)`` from env, config or the shared client."""

    env_id = _first_env(CLIENT_ID_ENV)
    if env_id:
        return env_id, _first_env(CLIENT_SECRET_ENV)
    if config.client_id:
        return config.client_id, config.client_secret
    if DEFAULT_CLIENT_ID:
        log.info("Using the bundled shared OAuth client")
        return DEFAULT_CLIENT_ID, DEFAULT_CLIENT_SECRET or None
    raise ConfigError(SETUP_INSTRUCTIONS.format(config_path=CONFIG_PATH))


__all__ = [
    "AppConfig",
    "CONFIG_DIR",
    "CONFIG_PATH",
    "HISTORY_PATH",
    "TOKEN_PATH",
    "load_config",
    "resolve_client_credentials",
    "save_config",
]
