"""Council Session State Machine

Owns every transition of a Session. The composite state is:

    Idle -> StepInProgress -> {AwaitingExtensionJudgment | StepCompleting}
         -> Idle (next step) ... -> AwaitingPhaseTransition -> next phase Idle
         ... final phase AwaitingPhaseTransition -> SessionComplete

Transition rules:
- StepStart: set step facts, reset counters, regenerate the remaining deck
  (Coordinator not forced first; it just spoke)
- Member turn while a step is active: actual_turns += 1
- StepExtensionNeeded: record the proposal, await user judgment
- Approve extension: only once per step, enforced here regardless of what
  the Coordinator was told
- StepCompleted: reset the step, clear the deck so the Coordinator speaks next
- PhaseCompleted (current phase only): mark a transition pending; never
  auto-advance
- Extend discussion: append one shuffled pass of all participants

Methods mutate the Session passed in. Callers that need atomicity work on a
copy (see council.debate.turn_executor).
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from council.debate.catalog import get_phase, has_next_phase, phase_for_session, total_phases
from council.debate.errors import InvalidSessionOperationError
from council.debate.markers import (
    DEFAULT_EXTENSION_TURNS,
    DEFAULT_STEP_TURNS,
    MarkerDefaults,
    MarkerSignal,
    MemoUpdate,
    PhaseCompleted,
    PlanUpdate,
    StepCompleted,
    StepExtensionNeeded,
    StepStart,
    UserQuestion,
)
from council.debate.speaker_deck import build_deck, build_extension_round
from council.models.catalog import COORDINATOR, CouncilMode, OutputMode, PhaseDefinition, Role
from council.models.session import (
    EntrySource,
    HistoryEntry,
    Session,
    StepProgress,
    StepStatus,
)

logger = logging.getLogger(__name__)

_EXTENSION_KEYWORDS = ("延長", "extension", "extend")
_APPROVE_ANSWER = "A"


class StepUpdate(BaseModel):
    """Step-level change reported back to the caller."""

    model_config = ConfigDict(frozen=True)

    type: Literal["start", "extension_needed"]
    step: str
    step_name: str
    estimated_turns: int
    actual_turns: int = 0


class ExtensionJudgment(str, Enum):
    """Outcome of a user step-extension judgment."""

    EXTENDED = "extended"
    REFUSED = "refused"
    NO_PENDING_EXTENSION = "no_pending_extension"
    COMPLETED = "completed"


class SignalOutcome(BaseModel):
    """What applying one turn's signals changed."""

    step_update: StepUpdate | None = None
    needs_extension_judgment: bool = False
    step_completed: bool = False
    completed_step: str = ""
    completed_step_name: str = ""
    phase_completed: bool = False
    plan_update: str | None = None
    memo_update: str | None = None
    user_question: str | None = None


@dataclass
class PhaseAdvance:
    """Result of an explicit phase advance."""

    is_complete: bool
    phase: PhaseDefinition | None
    current_phase: int
    total_phases: int


def is_extension_approval(question: str, answer: str) -> bool:
    """Whether a user answer approves a pending step extension."""
    lowered = question.lower()
    mentions_extension = any(keyword in lowered for keyword in _EXTENSION_KEYWORDS)
    return mentions_extension and answer.strip().upper() == _APPROVE_ANSWER


def format_user_answer(question: str, answer: str) -> str:
    """Transcript text for a user answer."""
    return f"[User answer]\nQuestion: {question}\nAnswer: {answer}"


class SessionStateMachine:
    """Applies marker-driven and user-driven transitions to sessions."""

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        default_step_turns: int = DEFAULT_STEP_TURNS,
        default_extension_turns: int = DEFAULT_EXTENSION_TURNS,
    ) -> None:
        """Initialize the state machine.

        Args:
            rng: Random source for deck shuffles. Inject a seeded Random
                for deterministic tests.
            default_step_turns: Estimate used when STEP_START omits one.
            default_extension_turns: Extension used when the request omits one.
        """
        self._rng = rng or random.Random()
        self._default_step_turns = default_step_turns
        self._default_extension_turns = default_extension_turns

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self,
        session_id: str,
        theme: str,
        mode: CouncilMode = CouncilMode.FREE,
        output_mode: OutputMode = OutputMode.IMPLEMENTATION,
        start_phase: int | None = None,
    ) -> Session:
        """Create a session with its initial deck (Coordinator first).

        Free mode always starts in its single phase; structured modes start
        at start_phase when it is within the catalog, else phase 1.

        Raises:
            InvalidSessionOperationError: If the theme is empty.
        """
        if not theme or not theme.strip():
            raise InvalidSessionOperationError("Theme is required")

        phase_count = total_phases(mode)
        phase_number = 1
        if mode is not CouncilMode.FREE and start_phase and 1 <= start_phase <= phase_count:
            phase_number = start_phase
        phase = get_phase(mode, phase_number)

        session = Session(
            session_id=session_id,
            theme=theme,
            mode=mode,
            output_mode=output_mode,
            current_phase=phase_number,
            speaker_deck=build_deck(phase, force_coordinator_first=True, rng=self._rng),
            current_plan=f"# {theme}\n\nDiscussion starting...",
            current_memo=(
                "# Meeting notes\n\n## Session start\n"
                f"- Theme: {theme}\n"
                f"- Mode: {mode.value}\n"
                f"- Start phase: Phase {phase_number} ({phase.name})\n"
            ),
        )
        logger.info(
            "Session %s created: mode=%s phase=%d deck=%d",
            session_id,
            mode.value,
            phase_number,
            len(session.speaker_deck),
        )
        return session

    def restore_session(
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
        """Rebuild a session from client-held state and a replayed transcript.

        The deck is regenerated with the Coordinator first and current_turn
        is inferred from the transcript length.

        Raises:
            InvalidSessionOperationError: If the theme is empty.
        """
        if not theme or not theme.strip():
            raise InvalidSessionOperationError("Theme is required for restoration")

        phase_number = 1
        if mode is not CouncilMode.FREE and current_phase:
            if 1 <= current_phase <= total_phases(mode):
                phase_number = current_phase
        phase = get_phase(mode, phase_number)

        step = StepProgress()
        if current_step:
            step = StepProgress(
                status=StepStatus.IN_PROGRESS,
                step_id=current_step,
                step_name=current_step_name,
                estimated_turns=max(0, estimated_step_turns),
                actual_turns=max(0, actual_step_turns),
            )

        entries = list(history)
        session = Session(
            session_id=session_id,
            theme=theme,
            mode=mode,
            output_mode=output_mode,
            current_phase=phase_number,
            current_turn=len(entries),
            speaker_deck=build_deck(phase, force_coordinator_first=True, rng=self._rng),
            history=entries,
            current_plan=current_plan or f"# {theme}\n\nDiscussion restored...",
            step=step,
        )
        logger.info(
            "Session %s restored with %d history entries", session_id, len(entries)
        )
        return session

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def ensure_speaker(self, session: Session) -> bool:
        """Refill an empty deck with the Coordinator.

        Deck exhaustion is a scheduling hint, not a phase end: only the
        Coordinator's completion marker ends a phase.

        Returns:
            True if the deck was refilled.
        """
        if session.speaker_deck:
            return False
        session.speaker_deck.append(COORDINATOR)
        logger.info(
            "Session %s: speaker deck empty, Coordinator added to continue phase %d",
            session.session_id,
            session.current_phase,
        )
        return True

    def pop_speaker(self, session: Session) -> Role:
        """Remove and return the next speaker, refilling first if needed."""
        self.ensure_speaker(session)
        return session.speaker_deck.pop(0)

    def record_turn(self, session: Session, role: Role) -> None:
        """Advance turn counters for a completed turn by role."""
        session.current_turn += 1
        if role.is_coordinator:
            session.turns_since_last_coordinator = 0
            return
        session.turns_since_last_coordinator += 1
        if session.step.is_active:
            session.step.actual_turns += 1

    def append_history(
        self,
        session: Session,
        role: Role,
        content: str,
        source: EntrySource = EntrySource.AGENT,
    ) -> None:
        session.history.append(HistoryEntry(role=role, content=content, source=source))

    # ------------------------------------------------------------------
    # Step transitions
    # ------------------------------------------------------------------

    def marker_defaults(self, session: Session) -> MarkerDefaults:
        """Fallbacks for lax marker parsing, derived from the session.

        The default step is the active one, else the first catalog step of
        the phase not yet completed.
        """
        step_id = session.step.step_id
        step_name = session.step.step_name
        if not step_id:
            phase = phase_for_session(session)
            pending = [s for s in phase.steps if s.id not in session.completed_steps]
            if pending:
                step_id, step_name = pending[0].id, pending[0].name
            elif phase.steps:
                step_id, step_name = phase.steps[-1].id, phase.steps[-1].name
        return MarkerDefaults(
            step_id=step_id or f"{session.current_phase}-1",
            step_name=step_name or "Step start",
            estimated_turns=self._default_step_turns,
            extension_turns=self._default_extension_turns,
        )

    def start_step(self, session: Session, signal: StepStart) -> StepUpdate:
        """Begin a step and regenerate the deck so Members resume."""
        session.step = StepProgress(
            status=StepStatus.IN_PROGRESS,
            step_id=signal.step_id,
            step_name=signal.step_name,
            estimated_turns=signal.estimated_turns,
        )
        phase = phase_for_session(session)
        session.speaker_deck = build_deck(phase, force_coordinator_first=False, rng=self._rng)
        logger.info(
            "Session %s: step %s (%s) started, estimate=%d, deck=%d",
            session.session_id,
            signal.step_id,
            signal.step_name,
            signal.estimated_turns,
            len(session.speaker_deck),
        )
        return StepUpdate(
            type="start",
            step=signal.step_id,
            step_name=signal.step_name,
            estimated_turns=signal.estimated_turns,
        )

    def complete_step(self, session: Session) -> tuple[str, str]:
        """Close the current step and clear the deck.

        Returns:
            (step_id, step_name) of the step that was closed; empty strings
            if none was active.
        """
        step_id, step_name = session.step.step_id, session.step.step_name
        if step_id and step_id not in session.completed_steps:
            session.completed_steps.append(step_id)
        session.step = StepProgress()
        session.speaker_deck = []
        logger.info(
            "Session %s: step %s completed, Coordinator speaks next",
            session.session_id,
            step_id or "<none>",
        )
        return step_id, step_name

    def request_extension(self, session: Session, signal: StepExtensionNeeded) -> StepUpdate | None:
        """Record a proposed extension and wait for user judgment.

        Returns:
            StepUpdate describing the pending request, or None when no step
            is active or the step was already extended.
        """
        if not session.step.is_active:
            logger.warning(
                "Session %s: extension requested with no active step; ignored",
                session.session_id,
            )
            return None
        if session.step.extended:
            logger.warning(
                "Session %s: step %s already extended once; extension request ignored",
                session.session_id,
                session.step.step_id,
            )
            return None

        session.step.proposed_extension_turns = signal.additional_turns
        session.step.status = StepStatus.AWAITING_EXTENSION_JUDGMENT
        logger.info(
            "Session %s: step %s extension requested (+%d turns)",
            session.session_id,
            session.step.step_id,
            signal.additional_turns,
        )
        return StepUpdate(
            type="extension_needed",
            step=session.step.step_id,
            step_name=session.step.step_name,
            estimated_turns=session.step.estimated_turns,
            actual_turns=session.step.actual_turns,
        )

    def approve_extension(self, session: Session) -> bool:
        """Apply the pending extension, at most once per step.

        Returns:
            True if the estimate was increased.
        """
        step = session.step
        if not step.is_active or step.proposed_extension_turns <= 0:
            return False
        if step.extended:
            logger.warning(
                "Session %s: step %s already extended once; extension rejected",
                session.session_id,
                step.step_id,
            )
            step.proposed_extension_turns = 0
            step.status = StepStatus.IN_PROGRESS
            return False

        step.estimated_turns += step.proposed_extension_turns
        step.extended = True
        step.proposed_extension_turns = 0
        step.status = StepStatus.IN_PROGRESS
        logger.info(
            "Session %s: step %s extended, new estimate=%d",
            session.session_id,
            step.step_id,
            step.estimated_turns,
        )
        return True

    def judge_step_extension(self, session: Session, extend: bool) -> ExtensionJudgment:
        """Apply an explicit user judgment on a step extension.

        extend=True applies the guarded approval and puts the Coordinator at
        the front of the deck to re-plan; extend=False completes the step
        as-is.
        """
        if not extend:
            self.complete_step(session)
            return ExtensionJudgment.COMPLETED

        if session.step.extended:
            self.approve_extension(session)
            return ExtensionJudgment.REFUSED
        if not self.approve_extension(session):
            logger.info("Session %s: no pending extension to apply", session.session_id)
            return ExtensionJudgment.NO_PENDING_EXTENSION

        session.speaker_deck.insert(0, COORDINATOR)
        return ExtensionJudgment.EXTENDED

    # ------------------------------------------------------------------
    # Phase transitions
    # ------------------------------------------------------------------

    def mark_phase_completed(self, session: Session, signal: PhaseCompleted) -> bool:
        """Mark a phase transition pending. Never advances by itself."""
        if signal.phase != session.current_phase:
            logger.warning(
                "Session %s: PhaseCompleted for phase %d ignored (current phase %d)",
                session.session_id,
                signal.phase,
                session.current_phase,
            )
            return False
        session.phase_transition_pending = True
        logger.info("Session %s: phase %d completed", session.session_id, signal.phase)
        return True

    def advance_phase(self, session: Session) -> PhaseAdvance:
        """Move to the next phase, or report completion if none remain.

        The new deck starts with the Coordinator. current_turn is kept.
        """
        phase_count = total_phases(session.mode)
        if not has_next_phase(session):
            session.is_complete = True
            session.phase_transition_pending = False
            logger.info("Session %s: all phases completed", session.session_id)
            return PhaseAdvance(
                is_complete=True,
                phase=None,
                current_phase=session.current_phase,
                total_phases=phase_count,
            )

        session.current_phase += 1
        phase = phase_for_session(session)
        session.speaker_deck = build_deck(phase, force_coordinator_first=True, rng=self._rng)
        session.step = StepProgress()
        session.completed_steps = []
        session.turns_since_last_coordinator = 0
        session.phase_transition_pending = False
        logger.info(
            "Session %s: advanced to phase %d (%s)",
            session.session_id,
            session.current_phase,
            phase.name,
        )
        return PhaseAdvance(
            is_complete=False,
            phase=phase,
            current_phase=session.current_phase,
            total_phases=phase_count,
        )

    def extend_discussion(self, session: Session) -> int:
        """Append one shuffled round of all participants to the deck.

        Returns:
            Number of turns added.
        """
        extra = build_extension_round(phase_for_session(session), rng=self._rng)
        session.speaker_deck.extend(extra)
        session.extension_count += 1
        logger.info(
            "Session %s: discussion extended by %d turns (extension #%d)",
            session.session_id,
            len(extra),
            session.extension_count,
        )
        return len(extra)

    # ------------------------------------------------------------------
    # Signal application
    # ------------------------------------------------------------------

    def apply_user_answer(self, session: Session, question: str, answer: str) -> bool:
        """Record a user answer and apply any extension approval it carries.

        Returns:
            True if the answer approved and applied an extension.
        """
        self.append_history(
            session, COORDINATOR, format_user_answer(question, answer), EntrySource.USER
        )
        session.last_user_question = ""
        if is_extension_approval(question, answer):
            return self.approve_extension(session)
        return False

    def apply_signals(
        self,
        session: Session,
        role: Role,
        signals: Sequence[MarkerSignal],
    ) -> SignalOutcome:
        """Apply detector output for a turn spoken by role.

        Step, phase and plan signals are honored only from the Coordinator.
        Memo notes and user questions are accepted from any role.
        """
        outcome = SignalOutcome()

        for signal in signals:
            if isinstance(signal, MemoUpdate):
                self._append_memo(session, signal.text)
                outcome.memo_update = signal.text
                continue
            if isinstance(signal, UserQuestion):
                session.last_user_question = signal.text
                outcome.user_question = signal.text
                continue

            if not role.is_coordinator:
                logger.debug(
                    "Session %s: %s marker from member %s ignored",
                    session.session_id,
                    signal.kind,
                    role.value,
                )
                continue

            if isinstance(signal, StepStart):
                outcome.step_update = self.start_step(session, signal)
            elif isinstance(signal, StepCompleted):
                step_id, step_name = self.complete_step(session)
                outcome.step_completed = True
                outcome.completed_step = step_id
                outcome.completed_step_name = step_name
            elif isinstance(signal, StepExtensionNeeded):
                update = self.request_extension(session, signal)
                if update is not None:
                    outcome.step_update = update
                    outcome.needs_extension_judgment = True
            elif isinstance(signal, PhaseCompleted):
                outcome.phase_completed = self.mark_phase_completed(session, signal)
            elif isinstance(signal, PlanUpdate):
                session.current_plan = signal.text
                outcome.plan_update = signal.text

        return outcome

    def _append_memo(self, session: Session, text: str) -> None:
        if session.current_memo:
            session.current_memo = f"{session.current_memo.rstrip()}\n\n{text}\n"
        else:
            session.current_memo = f"{text}\n"
