"""Session persistence: in-memory repository and debounced JSON snapshots."""

from council.persistence.session_repo import InMemorySessionRepository, SessionRepository
from council.persistence.snapshot import (
    DebouncedSnapshotScheduler,
    JsonFileSnapshotStore,
    SnapshotError,
)

__all__ = [
    "DebouncedSnapshotScheduler",
    "InMemorySessionRepository",
    "JsonFileSnapshotStore",
    "SessionRepository",
    "SnapshotError",
]
