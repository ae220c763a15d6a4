"""Durable snapshots of the session table.

JsonFileSnapshotStore writes the whole table as one JSON document: an
ordered list of ``[session_id, session]`` pairs. Writes go to a temporary
file that is atomically renamed over the target.

DebouncedSnapshotScheduler coalesces save requests. Each schedule_save()
restarts a single background timer; the snapshot is written once the table
has been quiet for the debounce window. Failures are logged and never
raised: the on-disk copy is a cache, the in-memory table stays correct.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from council.models.session import Session
from council.persistence.session_repo import SessionRepository

logger = logging.getLogger(__name__)

TimerFactory = Callable[..., Any]


class SnapshotError(Exception):
    """Raised when a snapshot cannot be written or read."""


class JsonFileSnapshotStore:
    """Snapshot file holding the ordered list of (session_id, session) pairs."""

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)

    @property
    def file_path(self) -> Path:
        return self._file_path

    def write(self, items: list[tuple[str, Session]]) -> None:
        """Atomically replace the snapshot file.

        Raises:
            SnapshotError: If serialization or any IO step fails.
        """
        try:
            payload = [[sid, session.model_dump(mode="json")] for sid, session in items]
            body = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise SnapshotError(f"Failed to serialize session snapshot: {e}") from e

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._file_path.name}.", dir=self._file_path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(body)
                os.replace(tmp_name, self._file_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise SnapshotError(f"Failed to write snapshot {self._file_path}: {e}") from e

    def read(self) -> list[tuple[str, Session]]:
        """Read the snapshot file.

        Returns:
            Ordered (session_id, session) pairs; empty if the file is absent.

        Raises:
            SnapshotError: If the file exists but cannot be read or parsed.
        """
        if not self._file_path.exists():
            return []

        try:
            raw = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SnapshotError(f"Failed to read snapshot {self._file_path}: {e}") from e

        if not isinstance(raw, list):
            raise SnapshotError(
                f"Snapshot {self._file_path} must be a list, got {type(raw).__name__}"
            )

        items: list[tuple[str, Session]] = []
        for index, pair in enumerate(raw):
            if not isinstance(pair, list) or len(pair) != 2:
                raise SnapshotError(f"Snapshot entry {index} is not a [id, session] pair")
            session_id, data = pair
            try:
                session = Session.model_validate(data)
            except ValidationError as e:
                raise SnapshotError(f"Snapshot entry {index} ({session_id}) is invalid") from e
            items.append((str(session_id), session))
        return items


class DebouncedSnapshotScheduler:
    """Single-flight debounced snapshot writer.

    Only one timer is pending at any time. schedule_save() never blocks on
    IO; flush_now() writes synchronously and cancels any pending timer.
    """

    def __init__(
        self,
        store: JsonFileSnapshotStore,
        repository: SessionRepository,
        debounce_seconds: float = 5.0,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Snapshot store to write to.
            repository: Session table to snapshot.
            debounce_seconds: Quiet period after the last request before writing.
            timer_factory: threading.Timer-compatible factory, injectable for tests.
        """
        self._store = store
        self._repository = repository
        self._debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._timer: Any = None
        self._generation = 0
        self._closed = False

    @property
    def pending(self) -> bool:
        """Whether a debounced write is scheduled."""
        with self._lock:
            return self._timer is not None

    def schedule_save(self) -> None:
        """Request a snapshot; restarts the debounce window."""
        with self._lock:
            if self._closed:
                logger.debug("Snapshot scheduler closed; save request ignored")
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = self._timer_factory(
                self._debounce_seconds, self._on_timer, args=(self._generation,)
            )
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self._write()

    def _cancel_pending(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def _write(self) -> bool:
        with self._write_lock:
            items = self._repository.snapshot()
            try:
                self._store.write(items)
            except SnapshotError as e:
                logger.warning("Session snapshot failed: %s", e)
                return False
            logger.info("Saved %d sessions to %s", len(items), self._store.file_path)
            return True

    def flush_now(self) -> bool:
        """Cancel any pending timer and write immediately.

        Returns:
            True if the snapshot was written.
        """
        self._cancel_pending()
        return self._write()

    def load_all(self) -> int:
        """Populate the repository from the last snapshot.

        A missing snapshot is a fresh start. An unreadable one is logged and
        the repository is left empty.

        Returns:
            Number of sessions loaded.
        """
        try:
            items = self._store.read()
        except SnapshotError as e:
            logger.warning("Session snapshot could not be loaded, starting empty: %s", e)
            return 0

        self._repository.replace_all(items)
        if items:
            logger.info("Loaded %d sessions from %s", len(items), self._store.file_path)
        else:
            logger.info("No session snapshot at %s; starting fresh", self._store.file_path)
        return len(items)

    def shutdown(self) -> bool:
        """Stop accepting save requests and flush synchronously."""
        with self._lock:
            self._closed = True
        return self.flush_now()
