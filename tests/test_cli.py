"""Tests for the command line interface helpers."""
from __future__ import annotations

from pathlib import Path

import pytest

from tubedeck_tui import cli
from tubedeck_tui.config import AppConfig, load_config
from tubedeck_tui.oauth import Credential
from tubedeck_tui.player import DependencyReport
from tubedeck_tui.session import SessionState
from tubedeck_tui.themes import CUSTOM_THEMES
from tubedeck_tui.token_store import TokenStore


@pytest.fixture
def state_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(cli, "TOKEN_PATH", tmp_path / "token.json")
    monkeypatch.setattr(cli, "HISTORY_PATH", tmp_path / "history.txt")
    for name in ("TUBEDECK_CLIENT_ID", "TUBEDECK_CLIENT_SECRET", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def _unexpected_app(*args, **kwargs):  # pragma: no cover - only used when failing
    raise AssertionError("the application should not be constructed")


def test_help_lists_all_themes(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("COLUMNS", "200")
    with pytest.raises(SystemExit):
        cli.parse_args(["--help"])

    help_text = capsys.readouterr().out
    for theme_name in sorted(CUSTOM_THEMES):
        assert theme_name in help_text


def test_list_themes_short_circuits_main(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli, "TubedeckApp", _unexpected_app)

    cli.main(["--list-themes"])

    assert capsys.readouterr().out.strip().splitlines() == sorted(CUSTOM_THEMES)


def test_history_flag_prints_newest_first(
    state_paths: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (state_paths / "history.txt").write_text("newest\noldest\n", encoding="utf8")
    monkeypatch.setattr(cli, "TubedeckApp", _unexpected_app)

    cli.main(["--history"])

    lines = capsys.readouterr().out.strip().splitlines()
    assert "newest" in lines[0]
    assert "https://www.youtube.com/watch?v=oldest" in lines[1]


def test_sign_out_removes_stored_credential(
    state_paths: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    store = TokenStore(state_paths / "token.json")
    store.save(Credential(access_token="at", refresh_token="rt", expires_at=1.0))

    cli.main(["--sign-out"])

    assert not store.path.exists()
    assert "Signed out" in capsys.readouterr().out


def test_missing_client_id_exits_with_instructions(
    state_paths: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(cli, "load_config", lambda path: AppConfig())
    monkeypatch.setattr("tubedeck_tui.config.DEFAULT_CLIENT_ID", "")
    monkeypatch.setattr(cli, "TubedeckApp", _unexpected_app)

    with pytest.raises(SystemExit) as excinfo:
        cli.main([])

    assert excinfo.value.code == cli.EXIT_CONFIG_ERROR
    assert "console.cloud.google.com" in capsys.readouterr().err


def test_check_deps_reports_missing_tools(
    state_paths: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(cli, "load_config", lambda path: AppConfig())
    monkeypatch.setattr(
        cli,
        "probe_dependencies",
        lambda player, resolver: DependencyReport(player="/usr/bin/mpv", resolver=None, missing=["yt-dlp"]),
    )
    monkeypatch.setattr(cli, "probe_version", lambda path: "mpv 0.38.0")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--check-deps"])

    assert excinfo.value.code == cli.EXIT_MISSING_DEPENDENCIES
    output = capsys.readouterr().out
    assert "Player: /usr/bin/mpv (mpv 0.38.0)" in output
    assert "Missing: yt-dlp" in output


def test_main_runs_app_built_from_config(
    state_paths: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    created: list[dict] = []

    class DummyApp:
        is_running = False

        def __init__(self, machine, *, theme=None, dependencies=None) -> None:
            created.append({"machine": machine, "theme": theme})
            self.ran = False

        def run(self) -> None:
            created[-1]["ran"] = True

    monkeypatch.setattr(cli, "TubedeckApp", DummyApp)
    monkeypatch.setattr(
        cli,
        "load_config",
        lambda path: AppConfig(client_id="cid", theme="gruvbox-dark", player="vlc"),
    )
    monkeypatch.setattr(
        cli,
        "probe_dependencies",
        lambda player, resolver: DependencyReport(player=None, resolver=None, missing=[]),
    )

    cli.main(["--theme", "solarized-light"])

    assert created[0]["ran"] is True
    assert created[0]["theme"] == "solarized-light"
    machine = created[0]["machine"]
    assert machine.session.state is SessionState.UNAUTHENTICATED
    assert machine.session.auth_client.client_id == "cid"


def test_build_app_restores_stored_session(state_paths: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    TokenStore(state_paths / "token.json").save(
        Credential(access_token="at", refresh_token="rt", expires_at=4_102_444_800.0)
    )
    monkeypatch.setattr(
        cli,
        "probe_dependencies",
        lambda player, resolver: DependencyReport(player=None, resolver=None, missing=[]),
    )

    app = cli.build_app(AppConfig(client_id="cid"))

    assert app.machine.session.state is SessionState.AUTHENTICATED


def test_save_defaults_writes_player_and_theme(
    state_paths: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = state_paths / "config.yaml"
    config_path.write_text("max_results: 10\nplayer: mpv\n", encoding="utf8")
    monkeypatch.setattr(cli, "TubedeckApp", _unexpected_app)

    cli.main(["--config", str(config_path), "--player", "vlc", "--theme", "gruvbox-dark", "--save-defaults"])

    saved = load_config(config_path)
    assert saved.player == "vlc"
    assert saved.theme == "gruvbox-dark"
    assert saved.max_results == 10
    assert "Saved defaults" in capsys.readouterr().out


def test_save_defaults_rejects_unknown_theme(
    state_paths: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = state_paths / "config.yaml"

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(config_path), "--theme", "no-such-theme", "--save-defaults"])

    assert excinfo.value.code == cli.EXIT_CONFIG_ERROR
    assert not config_path.exists()
    assert "no-such-theme" in capsys.readouterr().err
