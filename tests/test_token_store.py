"""Tests for credential persistence."""
from __future__ import annotations

import stat
from pathlib import Path

import pytest

from tubedeck_tui.errors import NotFound, PersistenceError
from tubedeck_tui.oauth import Credential
from tubedeck_tui.token_store import TokenStore


def test_saved_credential_loads_back(tmp_path: Path) -> None:
    store = TokenStore(tmp_path / "nested" / "token.json")
    credential = Credential(access_token="at", refresh_token="rt", expires_at=1234.5, scope="s")

    store.save(credential)

    assert store.load() == credential


def test_token_file_is_private(tmp_path: Path) -> None:
    store = TokenStore(tmp_path / "token.json")
    store.save(Credential(access_token="at", refresh_token="rt", expires_at=1.0))

    mode = stat.S_IMODE(store.path.stat().st_mode)
    assert mode == 0o600


def test_missing_file_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(NotFound):
        TokenStore(tmp_path / "token.json").load()


def test_corrupt_file_raises_persistence_error(tmp_path: Path) -> None:
    path = tmp_path / "token.json"
    path.write_text("{not json", encoding="utf8")

    with pytest.raises(PersistenceError) as excinfo:
        TokenStore(path).load()

    assert not isinstance(excinfo.value, NotFound)


def test_missing_fields_raise_persistence_error(tmp_path: Path) -> None:
    path = tmp_path / "token.json"
    path.write_text('{"refresh_token": "rt"}', encoding="utf8")

    with pytest.raises(PersistenceError):
        TokenStore(path).load()


def test_clear_is_idempotent(tmp_path: Path) -> None:
    store = TokenStore(tmp_path / "token.json")
    store.save(Credential(access_token="at", refresh_token="rt", expires_at=1.0))

    store.clear()
    store.clear()

    with pytest.raises(NotFound):
        store.load()
