"""Council domain models.

Pydantic models for the phase catalog, per-session state and turn results.
"""

from council.models.catalog import (
    CouncilMode,
    OutputMode,
    PhaseDefinition,
    Role,
    RoleProfile,
    StepDefinition,
)
from council.models.session import (
    EntrySource,
    HistoryEntry,
    Session,
    StepProgress,
    StepStatus,
)

__all__ = [
    "CouncilMode",
    "EntrySource",
    "HistoryEntry",
    "OutputMode",
    "PhaseDefinition",
    "Role",
    "RoleProfile",
    "Session",
    "StepDefinition",
    "StepProgress",
    "StepStatus",
]
