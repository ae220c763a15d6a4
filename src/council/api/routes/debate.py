"""Debate routes for the council API.

Request and response bodies use camelCase keys. Routes are plain ``def`` so
FastAPI runs them in its threadpool; a slow generation call for one session
does not hold up requests for others.

Provides:
- POST /api/debate/start
- POST /api/debate/next-turn
- POST /api/debate/next-phase
- POST /api/debate/step-extension-judgment
- POST /api/debate/extend-discussion
- POST /api/debate/restore
- GET /api/debate/session/{sessionId}
- GET /api/debate/plan/{sessionId}
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from council.debate.catalog import ROLE_PROFILES, has_next_phase, phase_for_session, total_phases
from council.debate.context import UserAnswer
from council.debate.turn_executor import TurnResult
from council.models.catalog import CouncilMode, OutputMode, PhaseDefinition, Role
from council.models.session import EntrySource, HistoryEntry, Session
from council.services.council_service import CouncilService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/debate", tags=["Debate"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartRequest(_CamelModel):
    """Request body for POST /api/debate/start."""

    session_id: str | None = None
    theme: str = ""
    mode: CouncilMode = CouncilMode.FREE
    output_mode: OutputMode = OutputMode.IMPLEMENTATION
    start_phase: int | None = None


class UserResponseBody(_CamelModel):
    question: str = ""
    answer: str


class NextTurnRequest(_CamelModel):
    """Request body for POST /api/debate/next-turn."""

    session_id: str
    user_response: UserResponseBody | None = None
    user_phase_instruction: str | None = None


class SessionRequest(_CamelModel):
    session_id: str


class ExtensionJudgmentRequest(_CamelModel):
    session_id: str
    extend: bool


class HistoryMessage(_CamelModel):
    agent: Role
    content: str
    source: EntrySource = EntrySource.AGENT


class RestoreRequest(_CamelModel):
    """Request body for POST /api/debate/restore."""

    session_id: str
    theme: str = ""
    mode: CouncilMode = CouncilMode.FREE
    output_mode: OutputMode = OutputMode.IMPLEMENTATION
    current_phase: int | None = None
    history: list[HistoryMessage] = Field(default_factory=list)
    current_step: str = ""
    current_step_name: str = ""
    estimated_step_turns: int = 0
    actual_step_turns: int = 0
    current_plan: str | None = None


def _service(request: Request) -> CouncilService:
    service: CouncilService = request.app.state.council_service
    return service


def _phase_payload(phase: PhaseDefinition) -> dict[str, Any]:
    return {
        "phase": phase.phase,
        "name": phase.name,
        "purpose": phase.purpose,
        "discussionStyle": phase.discussion_style,
        "artifactName": phase.artifact_name,
        "totalTurns": phase.total_turns,
        "steps": [
            {"id": step.id, "name": step.name, "description": step.description}
            for step in phase.steps
        ],
        "participants": [role.value for role in phase.participants],
    }


def _turn_payload(result: TurnResult, session: Session) -> dict[str, Any]:
    phase = phase_for_session(session)
    step_update = None
    if result.step_update is not None:
        step_update = {
            "type": result.step_update.type,
            "step": result.step_update.step,
            "stepName": result.step_update.step_name,
            "estimatedTurns": result.step_update.estimated_turns,
            "actualTurns": result.step_update.actual_turns,
        }
    return {
        "success": True,
        "agent": result.role.value,
        "agentName": result.role_name,
        "content": result.content,
        "planUpdate": result.plan_update,
        "memoUpdate": result.memo_update,
        "userQuestion": result.user_question,
        "stepUpdate": step_update,
        "needsExtensionJudgment": result.needs_extension_judgment,
        "extensionApproved": result.extension_approved,
        "deckRefilled": result.deck_refilled,
        "phaseCompleted": result.phase_completed,
        "stepCompleted": result.step_completed,
        "completedStep": result.completed_step,
        "completedStepName": result.completed_step_name,
        "turn": result.turn,
        "phase": result.phase,
        "phaseName": phase.name,
        "totalTurnsInPhase": phase.total_turns,
        "isPhaseComplete": result.phase_completed,
        "nextPhaseAvailable": has_next_phase(session),
        **result.progress,
    }


@router.post("/start")
def start_debate(request: Request, body: StartRequest) -> dict[str, Any]:
    """Create a session and return its initial phase."""
    started = _service(request).start(
        body.theme,
        session_id=body.session_id,
        mode=body.mode,
        output_mode=body.output_mode,
        start_phase=body.start_phase,
    )
    return {
        "success": True,
        "message": "Debate session initialized",
        "sessionId": started.session.session_id,
        "phase": _phase_payload(started.phase),
        "totalPhases": started.total_phases,
        "remainingInDeck": len(started.session.speaker_deck),
    }


@router.post("/next-turn")
def next_turn(request: Request, body: NextTurnRequest) -> dict[str, Any]:
    """Execute one turn for the session."""
    service = _service(request)
    user_answer = None
    if body.user_response is not None:
        user_answer = UserAnswer(
            question=body.user_response.question,
            answer=body.user_response.answer,
        )
    result = service.next_turn(
        body.session_id,
        user_answer=user_answer,
        phase_instruction=body.user_phase_instruction,
    )
    return _turn_payload(result, service.get_session(body.session_id))


@router.post("/next-phase")
def next_phase(request: Request, body: SessionRequest) -> dict[str, Any]:
    """Advance to the next phase, or report that all phases are done."""
    advance = _service(request).advance_phase(body.session_id)
    if advance.is_complete or advance.phase is None:
        return {
            "success": True,
            "message": "All phases completed",
            "isComplete": True,
            "currentPhase": advance.current_phase,
            "totalPhases": advance.total_phases,
        }
    return {
        "success": True,
        "message": f"Phase {advance.current_phase} started",
        "isComplete": False,
        "phase": _phase_payload(advance.phase),
        "currentPhase": advance.current_phase,
        "totalPhases": advance.total_phases,
    }


@router.post("/step-extension-judgment")
def step_extension_judgment(request: Request, body: ExtensionJudgmentRequest) -> dict[str, Any]:
    """Apply the user's decision on a pending step extension."""
    outcome = _service(request).judge_step_extension(body.session_id, body.extend)
    messages = {
        "extended": "Step extended",
        "refused": "Step was already extended once; extension not applied",
        "no_pending_extension": "No extension is pending for this step",
        "completed": "Step completed",
    }
    return {
        "success": True,
        "message": messages[outcome.judgment.value],
        "action": outcome.judgment.value,
        **outcome.session.progress_fields(),
    }


@router.post("/extend-discussion")
def extend_discussion(request: Request, body: SessionRequest) -> dict[str, Any]:
    """Add one shuffled round of every participant to the deck."""
    extension = _service(request).extend_discussion(body.session_id)
    session = extension.session
    return {
        "success": True,
        "message": f"Discussion extended (extension #{session.extension_count})",
        "extensionCount": session.extension_count,
        "addedTurns": extension.added_turns,
        "remainingInDeck": len(session.speaker_deck),
    }


@router.post("/restore")
def restore_session(request: Request, body: RestoreRequest) -> dict[str, Any]:
    """Rebuild a session from client-held state."""
    history = [
        HistoryEntry(role=msg.agent, content=msg.content, source=msg.source)
        for msg in body.history
    ]
    session = _service(request).restore(
        body.session_id,
        body.theme,
        mode=body.mode,
        output_mode=body.output_mode,
        current_phase=body.current_phase,
        history=history,
        current_step=body.current_step,
        current_step_name=body.current_step_name,
        estimated_step_turns=body.estimated_step_turns,
        actual_step_turns=body.actual_step_turns,
        current_plan=body.current_plan,
    )
    return {
        "success": True,
        "message": "Session restored successfully",
        "sessionId": session.session_id,
        "historyCount": len(session.history),
        **session.progress_fields(),
    }


@router.get("/session/{session_id}")
def get_session(request: Request, session_id: str) -> dict[str, Any]:
    """Full session snapshot for client-side state restoration."""
    session = _service(request).get_session(session_id)
    phase = phase_for_session(session)
    messages = [
        {
            "agent": entry.role.value,
            "agentName": ROLE_PROFILES[entry.role].name,
            "content": entry.content,
            "source": entry.source.value,
        }
        for entry in session.history
    ]
    return {
        "success": True,
        "session": {
            "sessionId": session.session_id,
            "theme": session.theme,
            "mode": session.mode.value,
            "outputMode": session.output_mode.value,
            "currentPhaseName": phase.name,
            "totalPhases": total_phases(session.mode),
            "totalTurnsInPhase": phase.total_turns,
            "currentPlan": session.current_plan,
            "currentMemo": session.current_memo,
            "lastUserQuestion": session.last_user_question,
            "completedSteps": list(session.completed_steps),
            "isComplete": session.is_complete,
            "messages": messages,
            "historyCount": len(session.history),
            "createdAt": session.created_at.isoformat(),
            "updatedAt": session.updated_at.isoformat(),
            **session.progress_fields(),
        },
    }


@router.get("/plan/{session_id}")
def get_plan(request: Request, session_id: str) -> dict[str, Any]:
    """Current living-document text."""
    return {"success": True, "plan": _service(request).get_plan(session_id)}
