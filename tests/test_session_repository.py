"""Tests for the in-memory session repository."""

from __future__ import annotations

import threading

import pytest

from council.debate.errors import SessionNotFoundError
from council.models.catalog import Role
from council.models.session import Session
from council.persistence.session_repo import InMemorySessionRepository, SessionRepository


def _session(session_id: str) -> Session:
    return Session(session_id=session_id, theme=f"Theme {session_id}")


class TestInMemorySessionRepository:
    """Copy-in / copy-out storage keyed by session id."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemorySessionRepository(), SessionRepository)

    def test_get_unknown_raises(self) -> None:
        with pytest.raises(SessionNotFoundError) as exc_info:
            InMemorySessionRepository().get("nope")

        assert exc_info.value.session_id == "nope"

    def test_get_returns_independent_copy(self) -> None:
        repo = InMemorySessionRepository()
        repo.put(_session("a"))

        working = repo.get("a")
        working.speaker_deck.append(Role.FACILITATOR)
        working.current_turn = 9

        stored = repo.get("a")
        assert stored.speaker_deck == []
        assert stored.current_turn == 0

    def test_put_copies_input(self) -> None:
        repo = InMemorySessionRepository()
        session = _session("a")
        repo.put(session)

        session.theme = "changed after put"

        assert repo.get("a").theme == "Theme a"

    def test_put_replaces_and_keeps_order(self) -> None:
        repo = InMemorySessionRepository()
        for sid in ("a", "b", "c"):
            repo.put(_session(sid))

        updated = repo.get("a")
        updated.current_turn = 3
        repo.put(updated)

        assert repo.list_ids() == ["a", "b", "c"]
        assert repo.get("a").current_turn == 3
        assert len(repo) == 3
        assert "b" in repo

    def test_delete(self) -> None:
        repo = InMemorySessionRepository()
        repo.put(_session("a"))

        assert repo.delete("a")
        assert not repo.delete("a")
        assert "a" not in repo

    def test_replace_all(self) -> None:
        repo = InMemorySessionRepository()
        repo.put(_session("old"))

        repo.replace_all([("x", _session("x")), ("y", _session("y"))])

        assert repo.list_ids() == ["x", "y"]
        with pytest.raises(SessionNotFoundError):
            repo.get("old")

    def test_concurrent_puts(self) -> None:
        repo = InMemorySessionRepository()

        def writer(prefix: str) -> None:
            for i in range(50):
                repo.put(_session(f"{prefix}-{i}"))

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(repo) == 200
        assert len(repo.snapshot()) == 200
