"""Council Turn Executor

Runs one turn of a session as a LangGraph state machine.

Node graph order:
START -> record_user_answer -> select_speaker -> generate -> record_response
      -> (conditional apply_signals) -> finalize_turn -> END

Key invariants:
- The graph runs on a copy of the stored session. The repository is only
  updated after generation succeeds, so a failed turn consumes nothing and
  can be retried.
- An empty deck is refilled with the Coordinator; it is never an error.
- Control markers are detected after the response is in the transcript and
  applied through SessionStateMachine.
"""

from __future__ import annotations

import logging
import random
from typing import Any

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, ConfigDict, Field

from council.config import CouncilConfig
from council.debate.catalog import ROLE_PROFILES, phase_for_session
from council.debate.context import UserAnswer, build_turn_context, render_prompt
from council.debate.errors import UpstreamGenerationError
from council.debate.markers import MarkerSignal, detect_signals
from council.debate.state_machine import SessionStateMachine, SignalOutcome, StepUpdate
from council.models.catalog import Role
from council.models.session import Session
from council.observability.tracing import generation_span
from council.persistence.session_repo import SessionRepository
from council.persistence.snapshot import DebouncedSnapshotScheduler
from council.services.generation.llm_client import LLMClient

logger = logging.getLogger(__name__)

TURN_NODE_ORDER: list[str] = [
    "record_user_answer",
    "select_speaker",
    "generate",
    "record_response",
    "apply_signals",
    "finalize_turn",
]
"""Node order of one turn (apply_signals is skipped when no marker is found)."""

_RECURSION_LIMIT = 25


class TurnState(BaseModel):
    """Graph state for a single turn."""

    session: Session
    user_answer: UserAnswer | None = None
    phase_instruction: str | None = None

    speaker: Role | None = None
    deck_refilled: bool = False
    extension_approved: bool = False
    response_text: str = ""
    signals: list[MarkerSignal] = Field(default_factory=list)
    outcome: SignalOutcome = Field(default_factory=SignalOutcome)
    nodes_visited: list[str] = Field(default_factory=list)


class TurnResult(BaseModel):
    """Outcome of one executed turn, as returned to callers."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    role: Role
    role_name: str
    content: str
    turn: int
    phase: int
    deck_refilled: bool = False
    extension_approved: bool = False
    plan_update: str | None = None
    memo_update: str | None = None
    user_question: str | None = None
    step_update: StepUpdate | None = None
    needs_extension_judgment: bool = False
    step_completed: bool = False
    completed_step: str = ""
    completed_step_name: str = ""
    phase_completed: bool = False
    progress: dict[str, Any] = Field(default_factory=dict)


class TurnExecutor:
    """Executes council turns against a session repository.

    Collaborators are injected: the repository, the generation client, the
    state machine and (optionally) the snapshot scheduler notified after
    every successful turn.
    """

    def __init__(
        self,
        repository: SessionRepository,
        llm_client: LLMClient,
        *,
        state_machine: SessionStateMachine | None = None,
        scheduler: DebouncedSnapshotScheduler | None = None,
        config: CouncilConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            repository: Session storage.
            llm_client: Text-generation collaborator.
            state_machine: Transition logic. Built from config and rng if omitted.
            scheduler: Snapshot scheduler to notify after each turn.
            config: Engine configuration. Defaults are used if omitted.
            rng: Random source for deck regeneration when building the state machine.
        """
        self._config = config or CouncilConfig()
        self._repository = repository
        self._llm_client = llm_client
        self._scheduler = scheduler
        self._state_machine = state_machine or SessionStateMachine(
            rng,
            default_step_turns=self._config.default_step_turns,
            default_extension_turns=self._config.default_extension_turns,
        )
        self._graph: Any | None = None

    @property
    def state_machine(self) -> SessionStateMachine:
        return self._state_machine

    def build_graph(self) -> Any:
        """Build and compile the per-turn LangGraph.

        Returns:
            Compiled LangGraph ready for invocation.
        """
        if self._graph is not None:
            return self._graph

        g = StateGraph(TurnState)

        g.add_node("record_user_answer", self._node_record_user_answer)
        g.add_node("select_speaker", self._node_select_speaker)
        g.add_node("generate", self._node_generate)
        g.add_node("record_response", self._node_record_response)
        g.add_node("apply_signals", self._node_apply_signals)
        g.add_node("finalize_turn", self._node_finalize_turn)

        g.set_entry_point("record_user_answer")

        g.add_edge("record_user_answer", "select_speaker")
        g.add_edge("select_speaker", "generate")
        g.add_edge("generate", "record_response")
        g.add_conditional_edges(
            "record_response",
            self._route_after_response,
            {
                "apply_signals": "apply_signals",
                "finalize_turn": "finalize_turn",
            },
        )
        g.add_edge("apply_signals", "finalize_turn")
        g.add_edge("finalize_turn", END)

        self._graph = g.compile()
        return self._graph

    def execute_turn(
        self,
        session_id: str,
        user_answer: UserAnswer | None = None,
        phase_instruction: str | None = None,
    ) -> TurnResult:
        """Run one turn for a session.

        Args:
            session_id: Target session.
            user_answer: Reply to the last question, if the user gave one.
            phase_instruction: Optional free-text instruction for this turn.

        Returns:
            TurnResult with the speaker, text, applied signals and progress.

        Raises:
            SessionNotFoundError: If the session does not exist.
            UpstreamGenerationError: If generation fails. The stored session
                is unchanged.
        """
        working = self._repository.get(session_id)
        initial = TurnState(
            session=working,
            user_answer=user_answer,
            phase_instruction=phase_instruction,
        )

        graph = self.build_graph()
        result = graph.invoke(
            initial.model_dump(),
            config={"recursion_limit": _RECURSION_LIMIT},
        )
        final = TurnState(**result)

        self._repository.put(final.session)
        if self._scheduler is not None:
            self._scheduler.schedule_save()

        return self._to_result(final)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _node_record_user_answer(self, state: TurnState) -> TurnState:
        """Append the user's answer and apply any extension approval it carries."""
        approved = False
        if state.user_answer is not None:
            approved = self._state_machine.apply_user_answer(
                state.session, state.user_answer.question, state.user_answer.answer
            )
        return state.model_copy(
            update={
                "session": state.session,
                "extension_approved": approved,
                "nodes_visited": [*state.nodes_visited, "record_user_answer"],
            }
        )

    def _node_select_speaker(self, state: TurnState) -> TurnState:
        """Pop the next speaker, refilling an empty deck with the Coordinator."""
        session = state.session
        refilled = self._state_machine.ensure_speaker(session)
        speaker = self._state_machine.pop_speaker(session)
        return state.model_copy(
            update={
                "session": session,
                "speaker": speaker,
                "deck_refilled": refilled,
                "nodes_visited": [*state.nodes_visited, "select_speaker"],
            }
        )

    def _node_generate(self, state: TurnState) -> TurnState:
        """Call the generation collaborator for the selected speaker."""
        session = state.session
        speaker = self._require_speaker(state)
        context = build_turn_context(
            session,
            phase_for_session(session),
            speaker,
            user_answer=state.user_answer,
            phase_instruction=state.phase_instruction,
            transcript_window=self._config.transcript_window,
        )
        prompt = render_prompt(context)

        try:
            with generation_span(session.session_id, speaker.value, session.current_phase):
                text = self._llm_client.call(prompt)
        except Exception as e:
            logger.warning(
                "Generation failed for session %s (%s): %s",
                session.session_id,
                speaker.value,
                e,
            )
            raise UpstreamGenerationError(session.session_id, speaker.value, e) from e

        return state.model_copy(
            update={
                "response_text": text,
                "nodes_visited": [*state.nodes_visited, "generate"],
            }
        )

    def _node_record_response(self, state: TurnState) -> TurnState:
        """Append the response, advance counters and detect markers."""
        session = state.session
        speaker = self._require_speaker(state)

        defaults = self._state_machine.marker_defaults(session)
        self._state_machine.append_history(session, speaker, state.response_text)
        self._state_machine.record_turn(session, speaker)
        signals = detect_signals(state.response_text, session.current_phase, defaults)

        logger.info(
            "Session %s turn %d: %s spoke (%d chars, %d markers)",
            session.session_id,
            session.current_turn,
            speaker.value,
            len(state.response_text),
            len(signals),
        )
        return state.model_copy(
            update={
                "session": session,
                "signals": signals,
                "nodes_visited": [*state.nodes_visited, "record_response"],
            }
        )

    def _node_apply_signals(self, state: TurnState) -> TurnState:
        """Apply detected markers through the state machine."""
        session = state.session
        speaker = self._require_speaker(state)
        outcome = self._state_machine.apply_signals(session, speaker, state.signals)
        return state.model_copy(
            update={
                "session": session,
                "outcome": outcome,
                "nodes_visited": [*state.nodes_visited, "apply_signals"],
            }
        )

    def _node_finalize_turn(self, state: TurnState) -> TurnState:
        """Stamp the modification time."""
        session = state.session
        session.touch()
        return state.model_copy(
            update={
                "session": session,
                "nodes_visited": [*state.nodes_visited, "finalize_turn"],
            }
        )

    def _route_after_response(self, state: TurnState) -> str:
        if state.signals:
            return "apply_signals"
        return "finalize_turn"

    # ------------------------------------------------------------------

    @staticmethod
    def _require_speaker(state: TurnState) -> Role:
        if state.speaker is None:
            raise RuntimeError("Turn graph reached generation without a speaker")
        return state.speaker

    def _to_result(self, state: TurnState) -> TurnResult:
        session = state.session
        speaker = self._require_speaker(state)
        outcome = state.outcome
        return TurnResult(
            session_id=session.session_id,
            role=speaker,
            role_name=ROLE_PROFILES[speaker].name,
            content=state.response_text,
            turn=session.current_turn,
            phase=session.current_phase,
            deck_refilled=state.deck_refilled,
            extension_approved=state.extension_approved,
            plan_update=outcome.plan_update,
            memo_update=outcome.memo_update,
            user_question=outcome.user_question,
            step_update=outcome.step_update,
            needs_extension_judgment=outcome.needs_extension_judgment,
            step_completed=outcome.step_completed,
            completed_step=outcome.completed_step,
            completed_step_name=outcome.completed_step_name,
            phase_completed=outcome.phase_completed,
            progress=session.progress_fields(),
        )
