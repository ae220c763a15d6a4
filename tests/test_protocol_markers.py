"""Tests for protocol marker detection.

Covers strict fields, lax fallbacks to defaults, the two user-question
forms, and phase-number validation.
"""

from __future__ import annotations

import logging

import pytest

from council.debate.markers import (
    MarkerDefaults,
    MemoUpdate,
    PhaseCompleted,
    PlanUpdate,
    StepCompleted,
    StepExtensionNeeded,
    StepStart,
    UserQuestion,
    detect_phase_completed,
    detect_signals,
    detect_step_extension,
    detect_step_start,
    detect_user_question,
)

DEFAULTS = MarkerDefaults(
    step_id="2-1", step_name="Option list", estimated_turns=8, extension_turns=3
)


class TestStepStart:
    """STEP_START: the token alone is enough."""

    def test_full_declaration(self) -> None:
        text = (
            "Let's begin.\n---STEP_START---\n"
            "Step 1-2: **Session goal (What)**\nEstimate: 6 turns"
        )

        signal = detect_step_start(text, DEFAULTS)

        assert signal == StepStart(
            step_id="1-2", step_name="Session goal (What)", estimated_turns=6
        )

    def test_japanese_declaration(self) -> None:
        text = "---STEP_START---\nステップ1-3：客観情報【事実】\n見積もり：5ターン"

        signal = detect_step_start(text, DEFAULTS)

        assert signal is not None
        assert signal.step_id == "1-3"
        assert signal.step_name == "客観情報"
        assert signal.estimated_turns == 5

    def test_token_only_falls_back_to_defaults(self) -> None:
        signal = detect_step_start("Moving on. ---STEP_START---", DEFAULTS)

        assert signal == StepStart(step_id="2-1", step_name="Option list", estimated_turns=8)

    def test_partial_fields(self) -> None:
        signal = detect_step_start("---STEP_START--- Step F-2 next", DEFAULTS)

        assert signal is not None
        assert signal.step_id == "F-2"
        assert signal.step_name == "Option list"
        assert signal.estimated_turns == 8

    def test_absent_token(self) -> None:
        assert detect_step_start("Step 1-2: Goal / Estimate: 3 turns", DEFAULTS) is None


class TestStepExtension:
    """STEP_EXTENSION_NEEDED with and without a turn count."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("---STEP_EXTENSION_NEEDED--- 追加で【4ターン】必要です", 4),
            ("---STEP_EXTENSION_NEEDED--- We need 2 more turns.", 2),
            ("---STEP_EXTENSION_NEEDED--- Requesting additional 5 turns", 5),
            ("---STEP_EXTENSION_NEEDED---", 3),
        ],
    )
    def test_turn_count(self, text: str, expected: int) -> None:
        signal = detect_step_extension(text, DEFAULTS)

        assert signal == StepExtensionNeeded(additional_turns=expected)


class TestPhaseCompleted:
    """PHASE_COMPLETED must name the current phase."""

    def test_current_phase(self) -> None:
        text = "Done.\n---PHASE_COMPLETED---Phase 2 完了---PHASE_COMPLETED---"

        assert detect_phase_completed(text, 2) == PhaseCompleted(phase=2)

    def test_english_form(self) -> None:
        text = "---PHASE_COMPLETED--- Phase 1 completed ---PHASE_COMPLETED---"

        assert detect_phase_completed(text, 1) == PhaseCompleted(phase=1)

    def test_wrong_phase_is_ignored_and_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        text = "---PHASE_COMPLETED---Phase 3 完了---PHASE_COMPLETED---"

        with caplog.at_level(logging.WARNING, logger="council.debate.markers"):
            signal = detect_phase_completed(text, 2)

        assert signal is None
        assert "current phase 2" in caplog.text

    def test_bare_token_is_ignored(self) -> None:
        assert detect_phase_completed("---PHASE_COMPLETED---", 1) is None


class TestUserQuestion:
    """Spanned form preferred; trailing form as fallback."""

    def test_spanned_form(self) -> None:
        text = "Hmm.\n---USER_QUESTION---\nWho is the audience?\n---USER_QUESTION---\nThanks."

        assert detect_user_question(text) == UserQuestion(text="Who is the audience?")

    def test_trailing_form(self) -> None:
        text = "Before we continue ---USER_QUESTION--- What is your budget?"

        assert detect_user_question(text) == UserQuestion(text="What is your budget?")

    def test_only_token_with_trailing_question(self) -> None:
        assert detect_user_question("---USER_QUESTION---What is your budget?") == UserQuestion(
            text="What is your budget?"
        )

    def test_empty_trailing_text(self) -> None:
        assert detect_user_question("Question pending ---USER_QUESTION---   ") is None


class TestDetectSignals:
    """Combined detection and ordering."""

    def test_no_markers(self) -> None:
        assert detect_signals("Just an opinion.", 1) == []

    def test_ordering(self) -> None:
        text = (
            "---USER_QUESTION---Budget?---USER_QUESTION---\n"
            "---MEMO_UPDATE---Decided on scope---MEMO_UPDATE---\n"
            "---PLAN_UPDATE---# Plan v2---PLAN_UPDATE---\n"
            "---PHASE_COMPLETED---Phase 1 完了---PHASE_COMPLETED---\n"
            "---STEP_COMPLETED---\n"
            "---STEP_START--- Step 1-5: Constraints / Estimate: 4 turns\n"
        )

        signals = detect_signals(text, 1, DEFAULTS)

        assert [type(s) for s in signals] == [
            StepStart,
            StepCompleted,
            PhaseCompleted,
            PlanUpdate,
            MemoUpdate,
            UserQuestion,
        ]
        assert signals[3] == PlanUpdate(text="# Plan v2")
        assert signals[4] == MemoUpdate(text="Decided on scope")

    def test_empty_plan_body_is_skipped(self) -> None:
        assert detect_signals("---PLAN_UPDATE---   ---PLAN_UPDATE---", 1) == []

    def test_wrong_phase_emits_nothing_else(self) -> None:
        text = "---PHASE_COMPLETED---Phase 4 完了---PHASE_COMPLETED---"

        assert detect_signals(text, 1) == []
