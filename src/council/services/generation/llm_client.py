"""Provider-agnostic LLM client interface + deterministic offline client.

LLMClient: Protocol for making LLM calls (provider-agnostic).
DeterministicCouncilLLMClient: Offline client that drives a session through
its steps without any external calls.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from council.debate.markers import STEP_COMPLETED_TOKEN, STEP_START_TOKEN

logger = logging.getLogger(__name__)

_SPEAKER_RE = re.compile(r"^You are (\S+)", re.MULTILINE)
_THEME_RE = re.compile(r"^Theme: (.+)$", re.MULTILINE)
_PENDING_STEP_RE = re.compile(r"^- Step (\S+): (.+?)(?<! \(done\))$", re.MULTILINE)

DETERMINISTIC_STEP_ESTIMATE = 4


class LLMClient(Protocol):
    """Provider-agnostic interface for LLM calls."""

    def call(self, prompt: str) -> str:
        """Make an LLM call and return the raw response text.

        Args:
            prompt: The full prompt text to send.

        Returns:
            Raw response string from the LLM.
        """
        ...


class DeterministicCouncilLLMClient:
    """Deterministic council client - no external calls.

    Members reply with a short attributed line. The Coordinator declares the
    first pending step when none is active and closes the step once its
    estimate is reached, so a session progresses without a real backend.
    """

    def call(self, prompt: str) -> str:
        """Return a deterministic reply derived from the prompt.

        Args:
            prompt: Rendered turn prompt.

        Returns:
            Reply text, possibly carrying control markers.
        """
        speaker_match = _SPEAKER_RE.search(prompt)
        theme_match = _THEME_RE.search(prompt)
        speaker = speaker_match.group(1) if speaker_match else "Participant"
        theme = theme_match.group(1).strip() if theme_match else "the theme"

        lines = [f"[{speaker}] Thoughts on {theme}."]

        if "## Control markers" in prompt:
            lines.extend(self._coordinator_markers(prompt))

        return "\n".join(lines)

    def _coordinator_markers(self, prompt: str) -> list[str]:
        if "The step estimate has been reached" in prompt:
            return [STEP_COMPLETED_TOKEN]

        if "## Current step" in prompt:
            return []

        pending = _PENDING_STEP_RE.search(prompt)
        if pending is None:
            return []

        step_id, step_name = pending.group(1), pending.group(2).strip()
        return [
            STEP_START_TOKEN,
            f"Step {step_id}: {step_name}",
            f"Estimate: {DETERMINISTIC_STEP_ESTIMATE} turns",
        ]
