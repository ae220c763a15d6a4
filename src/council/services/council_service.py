"""Council session service.

Facade over the repository, state machine, turn executor and snapshot
scheduler. Every operation is one get / mutate / put unit of work followed
by a save request, so the stored session only ever changes as a whole.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from council.debate.catalog import phase_for_session, total_phases
from council.debate.context import UserAnswer
from council.debate.state_machine import ExtensionJudgment, PhaseAdvance, SessionStateMachine
from council.debate.turn_executor import TurnExecutor, TurnResult
from council.models.catalog import CouncilMode, OutputMode, PhaseDefinition
from council.models.session import HistoryEntry, Session
from council.persistence.session_repo import SessionRepository
from council.persistence.snapshot import DebouncedSnapshotScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartedSession:
    """Result of starting a session."""

    session: Session
    phase: PhaseDefinition
    total_phases: int


@dataclass(frozen=True)
class ExtensionJudgmentResult:
    judgment: ExtensionJudgment
    session: Session


@dataclass(frozen=True)
class DiscussionExtension:
    added_turns: int
    session: Session


class CouncilService:
    """Session-level operations exposed to the HTTP layer."""

    def __init__(
        self,
        repository: SessionRepository,
        executor: TurnExecutor,
        scheduler: DebouncedSnapshotScheduler | None = None,
    ) -> None:
        self._repository = repository
        self._executor = executor
        self._scheduler = scheduler

    @property
    def state_machine(self) -> SessionStateMachine:
        return self._executor.state_machine

    def _save(self, session: Session) -> None:
        session.touch()
        self._repository.put(session)
        if self._scheduler is not None:
            self._scheduler.schedule_save()

    def start(
        self,
        theme: str,
        *,
        session_id: str | None = None,
        mode: CouncilMode = CouncilMode.FREE,
        output_mode: OutputMode = OutputMode.IMPLEMENTATION,
        start_phase: int | None = None,
    ) -> StartedSession:
        """Create a session and its initial deck.

        Raises:
            InvalidSessionOperationError: If the theme is empty.
        """
        session = self.state_machine.create_session(
            session_id or str(uuid.uuid4()),
            theme,
            mode=mode,
            output_mode=output_mode,
            start_phase=start_phase,
        )
        self._save(session)
        return StartedSession(
            session=session,
            phase=phase_for_session(session),
            total_phases=total_phases(mode),
        )

    def next_turn(
        self,
        session_id: str,
        user_answer: UserAnswer | None = None,
        phase_instruction: str | None = None,
    ) -> TurnResult:
        """Execute one turn.

        Raises:
            SessionNotFoundError: If the session does not exist.
            UpstreamGenerationError: If generation fails.
        """
        return self._executor.execute_turn(session_id, user_answer, phase_instruction)

    def advance_phase(self, session_id: str) -> PhaseAdvance:
        """Move the session to its next phase, or mark it complete.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        session = self._repository.get(session_id)
        advance = self.state_machine.advance_phase(session)
        self._save(session)
        return advance

    def judge_step_extension(self, session_id: str, extend: bool) -> ExtensionJudgmentResult:
        """Apply the user's decision on a pending step extension.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        session = self._repository.get(session_id)
        judgment = self.state_machine.judge_step_extension(session, extend)
        self._save(session)
        return ExtensionJudgmentResult(judgment=judgment, session=session)

    def extend_discussion(self, session_id: str) -> DiscussionExtension:
        """Append one shuffled round of every participant to the deck.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        session = self._repository.get(session_id)
        added = self.state_machine.extend_discussion(session)
        self._save(session)
        return DiscussionExtension(added_turns=added, session=session)

    def get_session(self, session_id: str) -> Session:
        """Raises SessionNotFoundError if the session does not exist."""
        return self._repository.get(session_id)

    def get_plan(self, session_id: str) -> str:
        return self._repository.get(session_id).current_plan

    def restore(
        self,
        session_id: str,
        theme: str,
        *,
        mode: CouncilMode = CouncilMode.FREE,
        output_mode: OutputMode = OutputMode.IMPLEMENTATION,
        current_phase: int | None = None,
        history: Sequence[HistoryEntry] = (),
        current_step: str = "",
        current_step_name: str = "",
        estimated_step_turns: int = 0,
        actual_step_turns: int = 0,
        current_plan: str | None = None,
    ) -> Session:
        """Rebuild a session from client-held state, replacing any stored copy.

        Raises:
            InvalidSessionOperationError: If the theme is empty.
        """
        session = self.state_machine.restore_session(
            session_id,
            theme,
            mode=mode,
            output_mode=output_mode,
            current_phase=current_phase,
            history=history,
            current_step=current_step,
            current_step_name=current_step_name,
            estimated_step_turns=estimated_step_turns,
            actual_step_turns=actual_step_turns,
            current_plan=current_plan,
        )
        self._save(session)
        return session
