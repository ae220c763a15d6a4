"""Council Phase/Step Catalog

Static configuration: role profiles, the five structured phases and the
single free-mode phase. Loaded once at import; never mutated.
"""

from __future__ import annotations

from council.models.catalog import (
    CouncilMode,
    PhaseDefinition,
    Role,
    RoleProfile,
    StepDefinition,
)
from council.models.session import Session

ALL_ROLES: tuple[Role, ...] = tuple(Role)

ROLE_PROFILES: dict[Role, RoleProfile] = {
    Role.FACILITATOR: RoleProfile(
        role=Role.FACILITATOR,
        name="Facilitator",
        emoji="⚪",
        focus="Pacing, step management and the living document",
    ),
    Role.FUTURE_POTENTIAL_SEEKER: RoleProfile(
        role=Role.FUTURE_POTENTIAL_SEEKER,
        name="FuturePotentialSeeker",
        emoji="\U0001f535",
        focus="Long-term potential and room to grow",
    ),
    Role.CONSTRAINT_CHECKER: RoleProfile(
        role=Role.CONSTRAINT_CHECKER,
        name="ConstraintChecker",
        emoji="\U0001f7e0",
        focus="Budget, deadline and resource constraints",
    ),
    Role.LOGICAL_CONSISTENCY_CHECKER: RoleProfile(
        role=Role.LOGICAL_CONSISTENCY_CHECKER,
        name="LogicalConsistencyChecker",
        emoji="⚫",
        focus="Logical gaps and contradictions",
    ),
    Role.USER_VALUE_ADVOCATE: RoleProfile(
        role=Role.USER_VALUE_ADVOCATE,
        name="UserValueAdvocate",
        emoji="\U0001f7e2",
        focus="Value delivered to end users",
    ),
    Role.INNOVATION_CATALYST: RoleProfile(
        role=Role.INNOVATION_CATALYST,
        name="InnovationCatalyst",
        emoji="\U0001f534",
        focus="Novel and unconventional options",
    ),
    Role.CONSTRUCTIVE_CRITIC: RoleProfile(
        role=Role.CONSTRUCTIVE_CRITIC,
        name="ConstructiveCritic",
        emoji="\U0001f7e1",
        focus="Weak points and how to fix them",
    ),
}


STRUCTURED_PHASES: tuple[PhaseDefinition, ...] = (
    PhaseDefinition(
        phase=1,
        name="Define",
        purpose="Define the overall purpose and session goal; collect objective and "
        "subjective information",
        discussion_style="Questioning and clarification",
        artifact_name="Project Charter",
        total_turns=11,
        participants=ALL_ROLES,
        steps=(
            StepDefinition(
                id="1-1", name="Overall purpose (Why)", description="The long-term vision"
            ),
            StepDefinition(
                id="1-2",
                name="Session goal (What)",
                description="The concrete deliverable produced in this session",
            ),
            StepDefinition(
                id="1-3", name="Objective information", description="Facts, data, market"
            ),
            StepDefinition(
                id="1-4",
                name="Subjective information",
                description="Stakeholder intent, values and concerns",
            ),
            StepDefinition(id="1-5", name="Constraints", description="Budget, deadline, resources"),
        ),
    ),
    PhaseDefinition(
        phase=2,
        name="Develop",
        purpose="Widen the option space through brainstorming and frameworks",
        discussion_style="Divergent brainstorming",
        artifact_name="Hypothesis Sheet",
        total_turns=11,
        participants=ALL_ROLES,
        steps=(
            StepDefinition(id="2-1", name="Option list", description="Every idea raised"),
            StepDefinition(
                id="2-2",
                name="Expanded perspectives",
                description="New viewpoints gained from frameworks",
            ),
            StepDefinition(
                id="2-3",
                name="Promising hypotheses",
                description="Background, content and expected outcome of the best ideas",
            ),
        ),
    ),
    PhaseDefinition(
        phase=3,
        name="Structure",
        purpose="Decide a direction against explicit criteria and design the skeleton",
        discussion_style="Convergent evaluation",
        artifact_name="Outline",
        total_turns=11,
        participants=ALL_ROLES,
        steps=(
            StepDefinition(id="3-1", name="Evaluation criteria", description="How to choose"),
            StepDefinition(
                id="3-2", name="Chosen direction", description="The selected option and why"
            ),
            StepDefinition(
                id="3-3",
                name="Detailed skeleton",
                description="Chapters, headings and paragraph plan of the deliverable",
            ),
        ),
    ),
    PhaseDefinition(
        phase=4,
        name="Generate",
        purpose="Write the body along the outline",
        discussion_style="Focused drafting",
        artifact_name="Draft",
        total_turns=8,
        participants=ALL_ROLES,
        steps=(
            StepDefinition(id="4-1", name="Body text", description="A full pass over the outline"),
            StepDefinition(
                id="4-2", name="Examples and data", description="Evidence that strengthens the body"
            ),
        ),
    ),
    PhaseDefinition(
        phase=5,
        name="Refine",
        purpose="Verify, correct and package the final deliverable",
        discussion_style="Critical review",
        artifact_name="Deliverable Package",
        total_turns=11,
        participants=ALL_ROLES,
        steps=(
            StepDefinition(
                id="5-1", name="Verification log", description="Gaps, contradictions and fixes"
            ),
            StepDefinition(
                id="5-2", name="Final deliverable", description="Reviewed, shippable result"
            ),
            StepDefinition(
                id="5-3", name="Appendix", description="All intermediate artifacts"
            ),
        ),
    ),
)

FREE_MODE_PHASE = PhaseDefinition(
    phase=1,
    name="Free",
    purpose="Members steer the discussion autonomously toward a useful artifact",
    discussion_style="Open discussion",
    artifact_name="Working Document",
    total_turns=14,
    participants=ALL_ROLES,
    steps=(
        StepDefinition(id="F-1", name="Framing", description="Agree on the question at hand"),
        StepDefinition(id="F-2", name="Exploration", description="Explore and challenge options"),
        StepDefinition(id="F-3", name="Synthesis", description="Converge on a written result"),
    ),
)


def phases_for_mode(mode: CouncilMode) -> tuple[PhaseDefinition, ...]:
    """Return the ordered phases a session in this mode walks through."""
    if mode is CouncilMode.FREE:
        return (FREE_MODE_PHASE,)
    return STRUCTURED_PHASES


def get_phase(mode: CouncilMode, phase_number: int) -> PhaseDefinition:
    """Return the phase definition for a mode, clamping out-of-range numbers.

    Numbers below 1 or above the catalog fall back to the first phase.
    """
    phases = phases_for_mode(mode)
    if 1 <= phase_number <= len(phases):
        return phases[phase_number - 1]
    return phases[0]


def phase_for_session(session: Session) -> PhaseDefinition:
    """Return the phase definition a session is currently in."""
    return get_phase(session.mode, session.current_phase)


def total_phases(mode: CouncilMode) -> int:
    """Number of phases for a mode (1 for free mode)."""
    return len(phases_for_mode(mode))


def has_next_phase(session: Session) -> bool:
    """Whether an explicit phase advance would move to another phase."""
    return session.current_phase < total_phases(session.mode)
