"""Council Catalog Models

Immutable definitions for roles, modes, phases and steps. These are loaded
once at startup (see council.debate.catalog) and never mutated.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Speaking participants of the council.

    FACILITATOR is the Coordinator: it manages pacing, declares and closes
    steps and owns the marker protocol. Every other role is a Member.
    """

    FACILITATOR = "facilitator"
    FUTURE_POTENTIAL_SEEKER = "future_potential_seeker"
    CONSTRAINT_CHECKER = "constraint_checker"
    LOGICAL_CONSISTENCY_CHECKER = "logical_consistency_checker"
    USER_VALUE_ADVOCATE = "user_value_advocate"
    INNOVATION_CATALYST = "innovation_catalyst"
    CONSTRUCTIVE_CRITIC = "constructive_critic"

    @property
    def is_coordinator(self) -> bool:
        """Whether this role is the privileged Coordinator."""
        return self is Role.FACILITATOR


COORDINATOR: Role = Role.FACILITATOR
"""The single Coordinator role."""


class CouncilMode(str, Enum):
    """Session modes. FREE runs a single unstructured phase."""

    FREE = "free"
    DEFINE = "define"
    DEVELOP = "develop"
    STRUCTURE = "structure"
    GENERATE = "generate"
    REFINE = "refine"


class OutputMode(str, Enum):
    """Target shape of the living document."""

    IMPLEMENTATION = "implementation"
    DOCUMENTATION = "documentation"


class RoleProfile(BaseModel):
    """Display profile for a role, used when rendering transcripts."""

    model_config = ConfigDict(frozen=True)

    role: Role
    name: str
    emoji: str
    focus: str


class StepDefinition(BaseModel):
    """A named sub-step of a phase."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Step id, e.g. '1-1' or 'F-2'")
    name: str
    description: str = ""


class PhaseDefinition(BaseModel):
    """Immutable phase definition.

    Member turn quotas default to floor(total_turns / participant count);
    turn_quotas overrides that per role.
    """

    model_config = ConfigDict(frozen=True)

    phase: int = Field(..., ge=1, description="Phase number (1..N)")
    name: str
    purpose: str = ""
    discussion_style: str = ""
    artifact_name: str = "Deliverable"
    total_turns: int = Field(..., ge=0, description="Target turn budget for the phase")
    steps: tuple[StepDefinition, ...] = ()
    participants: tuple[Role, ...] = Field(..., min_length=1)
    turn_quotas: dict[Role, int] = Field(default_factory=dict)

    @property
    def members(self) -> tuple[Role, ...]:
        """Participants other than the Coordinator, in catalog order."""
        return tuple(role for role in self.participants if not role.is_coordinator)

    def quota_for(self, role: Role) -> int:
        """Number of deck slots a Member receives in this phase."""
        if role in self.turn_quotas:
            return max(0, self.turn_quotas[role])
        return self.total_turns // len(self.participants)

    def step_by_id(self, step_id: str) -> StepDefinition | None:
        """Look up a step by id, or None if the phase has no such step."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None
