"""Tests for the session credential store (admonitor.storage.session_store)."""

from __future__ import annotations

from pathlib import Path

import pytest

from admonitor.storage.session_store import SessionStore


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore.open(str(tmp_path / "sessions.db"))


class TestSessionStore:
    def test_empty_store_returns_none(self, store: SessionStore) -> None:
        assert store.least_recently_used() is None

    def test_rejects_empty_values(self, store: SessionStore) -> None:
        with pytest.raises(ValueError):
            store.add_session("primary", "  ")

    def test_least_recently_used_rotates(self, store: SessionStore) -> None:
        store.add_session("primary", "token-1")
        store.add_session("backup", "token-2")

        first = store.least_recently_used()
        second = store.least_recently_used()
        third = store.least_recently_used()

        assert first is not None and second is not None and third is not None
        assert {first.name, second.name} == {"primary", "backup"}
        assert third.name == first.name

    def test_marks_credential_used(self, store: SessionStore) -> None:
        store.add_session("primary", "token-1")

        credential = store.least_recently_used()

        assert credential is not None
        assert credential.last_used_at is not None
        assert store.list_sessions()[0].last_used_at == credential.last_used_at

    def test_replacing_token_makes_session_fresh(self, store: SessionStore) -> None:
        store.add_session("primary", "token-1")
        store.add_session("backup", "token-2")
        store.least_recently_used()
        store.least_recently_used()

        store.add_session("primary", "token-3")
        credential = store.least_recently_used()

        assert credential is not None
        assert credential.name == "primary"
        assert credential.token == "token-3"

    def test_repr_hides_token(self, store: SessionStore) -> None:
        store.add_session("primary", "secret-token")

        credential = store.least_recently_used()

        assert "secret-token" not in repr(credential)
