"""Council Session Models

The Session is the mutable aggregate owned by the orchestration engine.

Counter rules:
- current_turn: +1 per executed turn, never decreases (not reset on phase advance)
- step.actual_turns: +1 per Member turn while a step is active; reset to 0
  exactly when a step starts or completes
- step.extended: False -> True at most once per step; reset on step start/complete
- turns_since_last_coordinator: +1 per Member turn, reset to 0 per Coordinator
  turn; advisory only, never acted on by the state machine
- history: append-only
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from council.models.catalog import CouncilMode, OutputMode, Role


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StepStatus(str, Enum):
    """Sub-state of the current step."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    AWAITING_EXTENSION_JUDGMENT = "awaiting_extension_judgment"


class EntrySource(str, Enum):
    """Origin of a transcript entry."""

    AGENT = "agent"
    USER = "user"


class HistoryEntry(BaseModel):
    """A single transcript entry. Entries are never mutated once appended."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    source: EntrySource = EntrySource.AGENT


class StepProgress(BaseModel):
    """Consolidated step sub-state.

    status IDLE means no step is active; all other fields are then at their
    reset values.
    """

    status: StepStatus = StepStatus.IDLE
    step_id: str = ""
    step_name: str = ""
    estimated_turns: int = Field(default=0, ge=0)
    actual_turns: int = Field(default=0, ge=0)
    extended: bool = False
    proposed_extension_turns: int = Field(default=0, ge=0)

    @property
    def is_active(self) -> bool:
        """Whether a step has been declared and not yet closed."""
        return self.status is not StepStatus.IDLE

    @property
    def remaining_turns(self) -> int:
        """Member turns left before the estimate is reached (never negative)."""
        return max(0, self.estimated_turns - self.actual_turns)


class Session(BaseModel):
    """Per-session mutable state, keyed by session_id."""

    session_id: str
    theme: str
    mode: CouncilMode = CouncilMode.FREE
    output_mode: OutputMode = OutputMode.IMPLEMENTATION

    current_phase: int = Field(default=1, ge=1)
    current_turn: int = Field(default=0, ge=0)

    speaker_deck: list[Role] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)

    current_plan: str = ""
    current_memo: str = ""

    step: StepProgress = Field(default_factory=StepProgress)
    completed_steps: list[str] = Field(default_factory=list)
    turns_since_last_coordinator: int = Field(default=0, ge=0)

    extension_count: int = Field(default=0, ge=0)
    auto_progress: bool = True
    last_user_question: str = ""
    phase_transition_pending: bool = False
    is_complete: bool = False

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def touch(self) -> None:
        """Record a modification time."""
        self.updated_at = _utcnow()

    def progress_fields(self) -> dict[str, Any]:
        """Flattened step/progress fields as exposed to clients."""
        return {
            "currentPhase": self.current_phase,
            "currentTurn": self.current_turn,
            "currentStep": self.step.step_id,
            "currentStepName": self.step.step_name,
            "stepStatus": self.step.status.value,
            "estimatedStepTurns": self.step.estimated_turns,
            "actualStepTurns": self.step.actual_turns,
            "stepExtended": self.step.extended,
            "proposedExtensionTurns": self.step.proposed_extension_turns,
            "turnsSinceLastCoordinatorTurn": self.turns_since_last_coordinator,
            "remainingInDeck": len(self.speaker_deck),
            "extensionCount": self.extension_count,
            "phaseTransitionPending": self.phase_transition_pending,
        }
