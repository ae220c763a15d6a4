"""Turn context assembly.

Collects every Session-derived input the generation collaborator needs for
one turn into an immutable TurnContext. Prompt wording is kept thin:
render_prompt only lays the facts out so a backend has something to read.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from council.debate.catalog import ROLE_PROFILES, total_phases
from council.debate.markers import (
    MEMO_UPDATE_TOKEN,
    PHASE_COMPLETED_TOKEN,
    PLAN_UPDATE_TOKEN,
    STEP_COMPLETED_TOKEN,
    STEP_EXTENSION_TOKEN,
    STEP_START_TOKEN,
    USER_QUESTION_TOKEN,
)
from council.debate.speaker_deck import COORDINATOR_INTERVAL
from council.models.catalog import OutputMode, PhaseDefinition, Role
from council.models.session import HistoryEntry, Session


class UserAnswer(BaseModel):
    """A user's reply to the last question asked by the council."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: str


class TurnContext(BaseModel):
    """Everything a generation backend may use for one turn."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    speaker: Role
    theme: str
    output_mode: OutputMode

    phase: int
    total_phases: int
    phase_name: str
    phase_purpose: str
    discussion_style: str
    artifact_name: str
    phase_steps: tuple[tuple[str, str], ...] = ()
    completed_steps: tuple[str, ...] = ()

    step_id: str = ""
    step_name: str = ""
    estimated_step_turns: int = 0
    actual_step_turns: int = 0
    remaining_step_turns: int = 0
    step_estimate_reached: bool = False
    step_already_extended: bool = False
    drift_check_due: bool = False
    turns_since_last_coordinator: int = 0

    current_plan: str = ""
    transcript: tuple[HistoryEntry, ...] = Field(default_factory=tuple)
    user_answer: UserAnswer | None = None
    phase_instruction: str | None = None


def build_turn_context(
    session: Session,
    phase: PhaseDefinition,
    speaker: Role,
    user_answer: UserAnswer | None = None,
    phase_instruction: str | None = None,
    transcript_window: int = 1000,
) -> TurnContext:
    """Derive the turn context from session state.

    Args:
        session: Session after the speaker was popped and the answer recorded.
        phase: Current phase definition.
        speaker: Role about to speak.
        user_answer: Answer supplied with this turn, if any.
        phase_instruction: Free-text instruction for the phase, if any.
        transcript_window: Number of most recent history entries to include.

    Returns:
        Immutable TurnContext.
    """
    step = session.step
    excerpt = session.history[-transcript_window:] if transcript_window > 0 else []

    return TurnContext(
        session_id=session.session_id,
        speaker=speaker,
        theme=session.theme,
        output_mode=session.output_mode,
        phase=session.current_phase,
        total_phases=total_phases(session.mode),
        phase_name=phase.name,
        phase_purpose=phase.purpose,
        discussion_style=phase.discussion_style,
        artifact_name=phase.artifact_name,
        phase_steps=tuple((s.id, s.name) for s in phase.steps),
        completed_steps=tuple(session.completed_steps),
        step_id=step.step_id,
        step_name=step.step_name,
        estimated_step_turns=step.estimated_turns,
        actual_step_turns=step.actual_turns,
        remaining_step_turns=step.remaining_turns,
        step_estimate_reached=step.is_active and step.actual_turns >= step.estimated_turns,
        step_already_extended=step.extended,
        drift_check_due=session.turns_since_last_coordinator >= COORDINATOR_INTERVAL,
        turns_since_last_coordinator=session.turns_since_last_coordinator,
        current_plan=session.current_plan,
        transcript=tuple(excerpt),
        user_answer=user_answer,
        phase_instruction=phase_instruction,
    )


def _coordinator_protocol(context: TurnContext) -> list[str]:
    lines = [
        "## Control markers",
        f"- Declare a step: {STEP_START_TOKEN} Step <id>: <name> / Estimate: <n> turns",
        f"- Close the step: {STEP_COMPLETED_TOKEN}",
        f"- Ask for more turns: {STEP_EXTENSION_TOKEN} additional 【<n> ターン】",
        f"- Close the phase: {PHASE_COMPLETED_TOKEN}Phase {context.phase} completed"
        f"{PHASE_COMPLETED_TOKEN}",
        f"- Replace the document: {PLAN_UPDATE_TOKEN}<text>{PLAN_UPDATE_TOKEN}",
        f"- Add notes: {MEMO_UPDATE_TOKEN}<text>{MEMO_UPDATE_TOKEN}",
        f"- Ask the user: {USER_QUESTION_TOKEN}<question>{USER_QUESTION_TOKEN}",
    ]
    if context.step_already_extended:
        lines.append("- This step was already extended once; it cannot be extended again.")
    if context.step_estimate_reached:
        lines.append("- The step estimate has been reached: close it or ask for an extension.")
    if context.drift_check_due:
        lines.append("- Several members spoke in a row: check the discussion is on topic.")
    return lines


def render_prompt(context: TurnContext) -> str:
    """Lay the turn context out as a plain-text prompt."""
    profile = ROLE_PROFILES[context.speaker]
    lines = [
        f"You are {profile.name} {profile.emoji}. Focus: {profile.focus}.",
        f"Theme: {context.theme}",
        f"Output mode: {context.output_mode.value}",
        "",
        f"## Phase {context.phase}/{context.total_phases}: {context.phase_name}",
        f"Purpose: {context.phase_purpose}",
        f"Style: {context.discussion_style}",
        f"Artifact: {context.artifact_name}",
    ]
    for step_id, step_name in context.phase_steps:
        done = " (done)" if step_id in context.completed_steps else ""
        lines.append(f"- Step {step_id}: {step_name}{done}")

    if context.step_id:
        lines.extend(
            [
                "",
                f"## Current step {context.step_id}: {context.step_name}",
                f"Turns: {context.actual_step_turns}/{context.estimated_step_turns}",
            ]
        )

    if context.speaker.is_coordinator:
        lines.append("")
        lines.extend(_coordinator_protocol(context))

    if context.current_plan:
        lines.extend(["", "## Current document", context.current_plan])

    if context.transcript:
        lines.extend(["", "## Discussion so far"])
        for entry in context.transcript:
            name = ROLE_PROFILES[entry.role].name
            lines.append(f"[{name}] {entry.content}")

    if context.user_answer is not None:
        lines.extend(
            [
                "",
                "## User answer",
                f"Question: {context.user_answer.question}",
                f"Answer: {context.user_answer.answer}",
            ]
        )

    if context.phase_instruction:
        lines.extend(["", "## Instruction", context.phase_instruction])

    return "\n".join(lines)
