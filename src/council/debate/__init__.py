"""Council debate orchestration.

Modules:
- catalog: Roles, phases and steps
- speaker_deck: Per-phase turn order
- markers: Control markers embedded in generated text
- state_machine: Session transitions
- context: Turn context assembly
- turn_executor: LangGraph turn pipeline (import directly)
"""

from council.debate.errors import (
    CouncilError,
    InvalidSessionOperationError,
    SessionNotFoundError,
    UpstreamGenerationError,
)
from council.debate.state_machine import SessionStateMachine

__all__ = [
    "CouncilError",
    "InvalidSessionOperationError",
    "SessionNotFoundError",
    "SessionStateMachine",
    "UpstreamGenerationError",
]
