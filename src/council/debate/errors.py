"""Council orchestration errors.

Only NotFound and upstream generation failures propagate to callers.
Malformed markers and wrong-phase references are absorbed by the detector;
persistence failures are absorbed by the snapshot scheduler.
"""

from __future__ import annotations


class CouncilError(Exception):
    """Base class for orchestration errors."""


class SessionNotFoundError(CouncilError):
    """Unknown session id. Permanent; callers should not retry."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class UpstreamGenerationError(CouncilError):
    """The text-generation collaborator failed or timed out.

    The stored session is left untouched, so the turn is safe to retry.
    """

    retryable = True

    def __init__(self, session_id: str, role: str, cause: BaseException) -> None:
        super().__init__(f"Generation failed for session {session_id} ({role}): {cause}")
        self.session_id = session_id
        self.role = role
        self.cause = cause


class InvalidSessionOperationError(CouncilError):
    """Request rejected before touching session state (e.g. empty theme)."""
