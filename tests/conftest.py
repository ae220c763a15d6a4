"""Pytest configuration and fixtures for council tests.

Generation is always scripted or deterministic: no test reaches the network.
"""

from __future__ import annotations

import random
import time
from collections.abc import Iterable
from pathlib import Path

import pytest

from council.config import CouncilConfig
from council.debate.state_machine import SessionStateMachine
from council.models.catalog import CouncilMode
from council.models.session import Session
from council.persistence.session_repo import InMemorySessionRepository
from council.persistence.snapshot import SnapshotError

COUNCIL_ENV_VARS = (
    "COUNCIL_SESSIONS_PATH",
    "COUNCIL_SAVE_DEBOUNCE_SECONDS",
    "COUNCIL_GENERATION_BACKEND",
    "COUNCIL_DEFAULT_STEP_TURNS",
    "COUNCIL_DEFAULT_EXTENSION_TURNS",
    "COUNCIL_TRANSCRIPT_WINDOW",
    "COUNCIL_ANTHROPIC_MODEL",
    "COUNCIL_OTEL_ENABLED",
)


class ScriptedLLMClient:
    """Returns queued responses in order, then a fixed filler line.

    Every prompt is recorded so tests can inspect what was sent.
    """

    def __init__(self, responses: Iterable[str] = (), filler: str = "Noted.") -> None:
        self._responses = list(responses)
        self._filler = filler
        self.prompts: list[str] = []

    def queue(self, *responses: str) -> None:
        self._responses.extend(responses)

    def call(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self._responses:
            return self._responses.pop(0)
        return self._filler


class FailingLLMClient:
    """Always fails, like an upstream outage."""

    def __init__(self) -> None:
        self.calls = 0

    def call(self, prompt: str) -> str:
        self.calls += 1
        raise RuntimeError("upstream unavailable")


class CountingSnapshotStore:
    """Snapshot store double that counts writes instead of touching disk."""

    def __init__(self, fail: bool = False) -> None:
        self.writes: list[list[tuple[str, Session]]] = []
        self.write_times: list[float] = []
        self.fail = fail
        self.file_path = Path("memory://sessions.json")

    def write(self, items: list[tuple[str, Session]]) -> None:
        if self.fail:
            raise SnapshotError("disk full")
        self.writes.append(items)
        self.write_times.append(time.monotonic())

    def read(self) -> list[tuple[str, Session]]:
        return self.writes[-1] if self.writes else []


@pytest.fixture(autouse=True)
def clean_council_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear COUNCIL_* variables so host settings never leak into tests."""
    for name in COUNCIL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for reproducible decks."""
    return random.Random(1234)


@pytest.fixture
def state_machine(rng: random.Random) -> SessionStateMachine:
    return SessionStateMachine(rng)


@pytest.fixture
def repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def config(tmp_path: Path) -> CouncilConfig:
    """Config with a snapshot file under tmp_path and a short debounce window."""
    return CouncilConfig(
        sessions_path=tmp_path / "sessions.json",
        save_debounce_seconds=0.05,
    )


@pytest.fixture
def free_session(state_machine: SessionStateMachine) -> Session:
    return state_machine.create_session("sess-free", "Team offsite plan", mode=CouncilMode.FREE)


@pytest.fixture
def structured_session(state_machine: SessionStateMachine) -> Session:
    return state_machine.create_session(
        "sess-structured", "New product launch", mode=CouncilMode.DEFINE
    )
