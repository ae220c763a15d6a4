"""Tests for session snapshots and the debounced save scheduler."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

import pytest

from council.debate.state_machine import SessionStateMachine
from council.models.catalog import CouncilMode, Role
from council.models.session import EntrySource, HistoryEntry, Session
from council.persistence.session_repo import InMemorySessionRepository
from council.persistence.snapshot import (
    DebouncedSnapshotScheduler,
    JsonFileSnapshotStore,
    SnapshotError,
)
from tests.conftest import CountingSnapshotStore


class FakeTimer:
    """threading.Timer stand-in fired explicitly by the test."""

    created: list[FakeTimer] = []

    def __init__(self, interval: float, function: Any, args: tuple[Any, ...] = ()) -> None:
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function(*self.args)


@pytest.fixture(autouse=True)
def reset_fake_timers() -> None:
    FakeTimer.created = []


def _populated_repo(machine: SessionStateMachine) -> InMemorySessionRepository:
    repo = InMemorySessionRepository()
    first = machine.create_session("s-1", "Team offsite plan", mode=CouncilMode.FREE)
    first.history.append(HistoryEntry(role=Role.FACILITATOR, content="Welcome 👋"))
    first.history.append(
        HistoryEntry(role=Role.FACILITATOR, content="Answer: A", source=EntrySource.USER)
    )
    first.completed_steps = ["F-1"]
    second = machine.create_session("s-2", "新製品", mode=CouncilMode.DEVELOP)
    repo.put(first)
    repo.put(second)
    return repo


class TestJsonFileSnapshotStore:
    """Whole-table JSON document with atomic replacement."""

    def test_round_trip(self, tmp_path: Path, state_machine: SessionStateMachine) -> None:
        repo = _populated_repo(state_machine)
        store = JsonFileSnapshotStore(tmp_path / "nested" / "sessions.json")

        store.write(repo.snapshot())
        loaded = store.read()

        assert [sid for sid, _ in loaded] == ["s-1", "s-2"]
        assert loaded == repo.snapshot()

    def test_file_layout_is_list_of_pairs(
        self, tmp_path: Path, state_machine: SessionStateMachine
    ) -> None:
        repo = _populated_repo(state_machine)
        path = tmp_path / "sessions.json"

        JsonFileSnapshotStore(path).write(repo.snapshot())

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert isinstance(raw, list)
        assert raw[0][0] == "s-1"
        assert raw[0][1]["theme"] == "Team offsite plan"
        assert raw[1][1]["mode"] == "develop"
        assert list(tmp_path.iterdir()) == [path]

    def test_missing_file_reads_empty(self, tmp_path: Path) -> None:
        assert JsonFileSnapshotStore(tmp_path / "absent.json").read() == []

    @pytest.mark.parametrize(
        "content",
        ["{not json", '{"s-1": {}}', '[["s-1"]]', '[["s-1", {"theme": "x"}]]'],
    )
    def test_corrupt_file_raises(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "sessions.json"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(SnapshotError):
            JsonFileSnapshotStore(path).read()

    def test_unwritable_target_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")

        with pytest.raises(SnapshotError):
            JsonFileSnapshotStore(blocker / "sessions.json").write([])


class TestDebouncedScheduler:
    """Coalescing and failure handling, driven by a fake timer."""

    def test_burst_coalesces_into_single_write(self) -> None:
        store = CountingSnapshotStore()
        scheduler = DebouncedSnapshotScheduler(
            store, InMemorySessionRepository(), 5.0, timer_factory=FakeTimer
        )

        for _ in range(10):
            scheduler.schedule_save()

        assert len(FakeTimer.created) == 10
        assert all(t.cancelled for t in FakeTimer.created[:-1])
        assert all(t.daemon and t.interval == 5.0 for t in FakeTimer.created)
        assert scheduler.pending

        for timer in FakeTimer.created:
            timer.fire()

        assert len(store.writes) == 1
        assert not scheduler.pending

    def test_write_uses_latest_table(self, state_machine: SessionStateMachine) -> None:
        repo = InMemorySessionRepository()
        store = CountingSnapshotStore()
        scheduler = DebouncedSnapshotScheduler(store, repo, 1.0, timer_factory=FakeTimer)

        scheduler.schedule_save()
        repo.put(state_machine.create_session("late", "Added after scheduling"))
        FakeTimer.created[-1].fire()

        assert [sid for sid, _ in store.writes[0]] == ["late"]

    def test_flush_now_cancels_pending(self) -> None:
        store = CountingSnapshotStore()
        scheduler = DebouncedSnapshotScheduler(
            store, InMemorySessionRepository(), 5.0, timer_factory=FakeTimer
        )
        scheduler.schedule_save()

        assert scheduler.flush_now()
        assert FakeTimer.created[-1].cancelled
        assert not scheduler.pending

        FakeTimer.created[-1].fire()
        assert len(store.writes) == 1

    def test_failed_write_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        scheduler = DebouncedSnapshotScheduler(
            CountingSnapshotStore(fail=True),
            InMemorySessionRepository(),
            timer_factory=FakeTimer,
        )

        with caplog.at_level(logging.WARNING, logger="council.persistence.snapshot"):
            assert scheduler.flush_now() is False

        assert "Session snapshot failed" in caplog.text

    def test_shutdown_flushes_and_closes(self) -> None:
        store = CountingSnapshotStore()
        scheduler = DebouncedSnapshotScheduler(
            store, InMemorySessionRepository(), timer_factory=FakeTimer
        )
        scheduler.schedule_save()

        assert scheduler.shutdown()
        scheduler.schedule_save()

        assert len(store.writes) == 1
        assert len(FakeTimer.created) == 1
        assert not scheduler.pending


class TestDebouncedSchedulerTiming:
    """Real timers with a short window."""

    def test_write_happens_after_quiet_period(self) -> None:
        store = CountingSnapshotStore()
        scheduler = DebouncedSnapshotScheduler(store, InMemorySessionRepository(), 0.1)

        last_request = 0.0
        for _ in range(10):
            scheduler.schedule_save()
            last_request = time.monotonic()
            time.sleep(0.01)

        deadline = time.monotonic() + 3.0
        while not store.writes and time.monotonic() < deadline:
            time.sleep(0.02)

        assert len(store.writes) == 1
        assert store.write_times[0] - last_request >= 0.08
        time.sleep(0.2)
        assert len(store.writes) == 1


class TestLoadAll:
    """Startup restore from the snapshot file."""

    def test_loads_into_repository(
        self, tmp_path: Path, state_machine: SessionStateMachine
    ) -> None:
        path = tmp_path / "sessions.json"
        JsonFileSnapshotStore(path).write(_populated_repo(state_machine).snapshot())
        repo = InMemorySessionRepository()
        scheduler = DebouncedSnapshotScheduler(JsonFileSnapshotStore(path), repo)

        assert scheduler.load_all() == 2
        assert repo.list_ids() == ["s-1", "s-2"]
        restored: Session = repo.get("s-1")
        assert restored.history[1].source is EntrySource.USER
        assert restored.completed_steps == ["F-1"]

    def test_missing_file_starts_empty(self, tmp_path: Path) -> None:
        repo = InMemorySessionRepository()
        scheduler = DebouncedSnapshotScheduler(
            JsonFileSnapshotStore(tmp_path / "sessions.json"), repo
        )

        assert scheduler.load_all() == 0
        assert len(repo) == 0

    def test_corrupt_file_starts_empty(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "sessions.json"
        path.write_text("[[", encoding="utf-8")
        repo = InMemorySessionRepository()
        scheduler = DebouncedSnapshotScheduler(JsonFileSnapshotStore(path), repo)

        with caplog.at_level(logging.WARNING, logger="council.persistence.snapshot"):
            assert scheduler.load_all() == 0

        assert len(repo) == 0
        assert "could not be loaded" in caplog.text
