"""Council Protocol Marker Detector

Extracts typed control signals embedded in free-form generated text.

Each signal is keyed by a delimiter token (e.g. ``---STEP_START---``).
Presence of the token alone is enough to emit the signal; surrounding fields
are pulled out by permissive patterns and fall back to caller-supplied
defaults when the sub-format does not match.

Exceptions to the lax rule:
- PhaseCompleted must name the current phase number; any other number is
  ignored and logged.
- PlanUpdate / MemoUpdate require the spanned form and a non-empty body.

The detector is pure: output depends only on the text, the current phase
number and the supplied defaults.
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

STEP_START_TOKEN = "---STEP_START---"
STEP_COMPLETED_TOKEN = "---STEP_COMPLETED---"
STEP_EXTENSION_TOKEN = "---STEP_EXTENSION_NEEDED---"
PHASE_COMPLETED_TOKEN = "---PHASE_COMPLETED---"
PLAN_UPDATE_TOKEN = "---PLAN_UPDATE---"
MEMO_UPDATE_TOKEN = "---MEMO_UPDATE---"
USER_QUESTION_TOKEN = "---USER_QUESTION---"

DEFAULT_STEP_TURNS = 8
DEFAULT_EXTENSION_TURNS = 3

_STEP_ID_RE = re.compile(r"(?:ステップ|Step)\s*([a-zA-Z0-9]+-[0-9]+)", re.IGNORECASE)
_STEP_NAME_RE = re.compile(
    r"(?:ステップ|Step)\s*[a-zA-Z0-9]+-[0-9]+\s*[:：]\s*([^\n]+)", re.IGNORECASE
)
_STEP_ESTIMATE_RE = re.compile(r"(?:見積もり|Estimate|Turns?).*?(\d+)", re.IGNORECASE)
_EXTENSION_TURNS_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"追加で?【\s*(\d+)\s*ターン\s*】"),
    re.compile(r"(?:additional|extra|another)\D{0,20}?(\d+)\s*turns?", re.IGNORECASE),
    re.compile(r"(\d+)\s*(?:more|additional|extra)\s*turns?", re.IGNORECASE),
)
_BOLD_RE = re.compile(r"\*\*")
_BRACKET_NOTE_RE = re.compile(r"【.*?】")


def _spanned_re(token: str) -> re.Pattern[str]:
    escaped = re.escape(token)
    return re.compile(f"{escaped}([\\s\\S]*?){escaped}")


_PLAN_RE = _spanned_re(PLAN_UPDATE_TOKEN)
_MEMO_RE = _spanned_re(MEMO_UPDATE_TOKEN)
_USER_QUESTION_RE = _spanned_re(USER_QUESTION_TOKEN)


class StepStart(BaseModel):
    """Coordinator declared a new step."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["step_start"] = "step_start"
    step_id: str
    step_name: str
    estimated_turns: int = Field(..., ge=0)


class StepCompleted(BaseModel):
    """Coordinator closed the current step."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["step_completed"] = "step_completed"


class StepExtensionNeeded(BaseModel):
    """Coordinator asks the user to approve more turns for the step."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["step_extension_needed"] = "step_extension_needed"
    additional_turns: int = Field(..., ge=0)


class PhaseCompleted(BaseModel):
    """Coordinator declared the current phase complete."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["phase_completed"] = "phase_completed"
    phase: int


class PlanUpdate(BaseModel):
    """Replacement text for the living document."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["plan_update"] = "plan_update"
    text: str


class MemoUpdate(BaseModel):
    """Notes to append to the session memo."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["memo_update"] = "memo_update"
    text: str


class UserQuestion(BaseModel):
    """Question addressed to the human user."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["user_question"] = "user_question"
    text: str


MarkerSignal = Annotated[
    StepStart
    | StepCompleted
    | StepExtensionNeeded
    | PhaseCompleted
    | PlanUpdate
    | MemoUpdate
    | UserQuestion,
    Field(discriminator="kind"),
]


class MarkerDefaults(BaseModel):
    """Fallback values used when a token is present but its fields are not."""

    model_config = ConfigDict(frozen=True)

    step_id: str = "1-1"
    step_name: str = "Step start"
    estimated_turns: int = DEFAULT_STEP_TURNS
    extension_turns: int = DEFAULT_EXTENSION_TURNS


def _clean_step_name(raw: str) -> str:
    name = _BOLD_RE.sub("", raw)
    name = _BRACKET_NOTE_RE.sub("", name)
    return name.strip()


def detect_step_start(text: str, defaults: MarkerDefaults) -> StepStart | None:
    """Detect a step declaration, filling missing fields from defaults."""
    if STEP_START_TOKEN not in text:
        return None

    id_match = _STEP_ID_RE.search(text)
    name_match = _STEP_NAME_RE.search(text)
    estimate_match = _STEP_ESTIMATE_RE.search(text)

    step_name = _clean_step_name(name_match.group(1)) if name_match else ""

    signal = StepStart(
        step_id=id_match.group(1) if id_match else defaults.step_id,
        step_name=step_name or defaults.step_name,
        estimated_turns=int(estimate_match.group(1))
        if estimate_match
        else defaults.estimated_turns,
    )
    if not (id_match and name_match and estimate_match):
        logger.debug("STEP_START parsed leniently: %s", signal)
    return signal


def detect_step_completed(text: str) -> StepCompleted | None:
    """Detect a step completion; the token alone is sufficient."""
    if STEP_COMPLETED_TOKEN in text:
        return StepCompleted()
    return None


def detect_step_extension(text: str, defaults: MarkerDefaults) -> StepExtensionNeeded | None:
    """Detect an extension request and its proposed additional turns."""
    if STEP_EXTENSION_TOKEN not in text:
        return None

    for pattern in _EXTENSION_TURNS_RES:
        match = pattern.search(text)
        if match:
            return StepExtensionNeeded(additional_turns=int(match.group(1)))

    return StepExtensionNeeded(additional_turns=defaults.extension_turns)


def detect_phase_completed(text: str, current_phase: int) -> PhaseCompleted | None:
    """Detect completion of exactly the current phase.

    The payload must read ``Phase <current_phase> 完了`` (or ``completed``)
    between two tokens. A token naming another phase is ignored.
    """
    if PHASE_COMPLETED_TOKEN not in text:
        return None

    token = re.escape(PHASE_COMPLETED_TOKEN)
    pattern = re.compile(
        f"{token}\\s*Phase\\s*{current_phase}\\s*(?:完了|complete(?:d)?)\\s*{token}",
        re.IGNORECASE,
    )
    if pattern.search(text):
        return PhaseCompleted(phase=current_phase)

    logger.warning(
        "Ignoring PHASE_COMPLETED token that does not reference current phase %d",
        current_phase,
    )
    return None


def _detect_spanned(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    body = match.group(1).strip()
    return body or None


def detect_plan_update(text: str) -> PlanUpdate | None:
    """Detect a spanned plan update."""
    body = _detect_spanned(_PLAN_RE, text)
    return PlanUpdate(text=body) if body is not None else None


def detect_memo_update(text: str) -> MemoUpdate | None:
    """Detect a spanned memo update."""
    body = _detect_spanned(_MEMO_RE, text)
    return MemoUpdate(text=body) if body is not None else None


def detect_user_question(text: str) -> UserQuestion | None:
    """Detect a question for the user.

    Spanned form is preferred. With a single token, everything after the last
    occurrence (trimmed) is the question.
    """
    if USER_QUESTION_TOKEN not in text:
        return None

    spanned = _detect_spanned(_USER_QUESTION_RE, text)
    if spanned is not None:
        return UserQuestion(text=spanned)

    trailing = text.split(USER_QUESTION_TOKEN)[-1].strip()
    if trailing:
        return UserQuestion(text=trailing)
    return None


def detect_signals(
    text: str,
    current_phase: int,
    defaults: MarkerDefaults | None = None,
) -> list[MarkerSignal]:
    """Scan text for every known marker.

    Args:
        text: Raw generated text.
        current_phase: Phase number a PhaseCompleted token must reference.
        defaults: Fallbacks for lax field extraction.

    Returns:
        Signals in application order: step start, step completed, extension,
        phase completed, plan, memo, user question.
    """
    defaults = defaults or MarkerDefaults()
    candidates: list[MarkerSignal | None] = [
        detect_step_start(text, defaults),
        detect_step_completed(text),
        detect_step_extension(text, defaults),
        detect_phase_completed(text, current_phase),
        detect_plan_update(text),
        detect_memo_update(text),
        detect_user_question(text),
    ]
    return [signal for signal in candidates if signal is not None]
