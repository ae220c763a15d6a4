"""Tests for speaker deck generation.

Order is random; composition and Coordinator spacing are not.
"""

from __future__ import annotations

import random
from collections import Counter

import pytest

from council.debate.catalog import FREE_MODE_PHASE, STRUCTURED_PHASES
from council.debate.speaker_deck import (
    build_deck,
    build_extension_round,
    expected_deck_length,
    member_slots,
)
from council.models.catalog import COORDINATOR, PhaseDefinition, Role

A = Role.FUTURE_POTENTIAL_SEEKER
B = Role.CONSTRAINT_CHECKER


def _two_member_phase() -> PhaseDefinition:
    return PhaseDefinition(
        phase=1,
        name="Two members",
        total_turns=6,
        participants=(COORDINATOR, A, B),
        turn_quotas={A: 2, B: 2},
    )


def _assert_spacing(deck: list[Role], forced_first: bool) -> None:
    body = deck[1:] if forced_first else deck
    for previous, current in zip(deck, deck[1:], strict=False):
        assert not (previous is COORDINATOR and current is COORDINATOR)
    assert body[-1] is not COORDINATOR
    run = 0
    for role in body:
        if role is COORDINATOR:
            assert run == 2
            run = 0
        else:
            run += 1
            assert run <= 2


class TestDeckLength:
    """Deck length is M + floor((M - 1) / 2), plus one when forced first."""

    def test_two_by_two_quotas(self) -> None:
        phase = _two_member_phase()

        assert len(build_deck(phase, rng=random.Random(1))) == 5
        assert len(build_deck(phase, force_coordinator_first=True, rng=random.Random(1))) == 6

    @pytest.mark.parametrize("phase", [*STRUCTURED_PHASES, FREE_MODE_PHASE])
    def test_catalog_phases_match_formula(self, phase: PhaseDefinition) -> None:
        members = len(member_slots(phase))
        for forced in (False, True):
            deck = build_deck(phase, force_coordinator_first=forced, rng=random.Random(7))
            assert len(deck) == expected_deck_length(members, forced)

    def test_free_phase_deck_size(self) -> None:
        deck = build_deck(FREE_MODE_PHASE, force_coordinator_first=True, rng=random.Random(3))

        assert len(deck) == 18

    def test_empty_member_set(self) -> None:
        phase = PhaseDefinition(phase=1, name="Solo", total_turns=3, participants=(COORDINATOR,))

        assert build_deck(phase) == []
        assert build_deck(phase, force_coordinator_first=True) == [COORDINATOR]


class TestDeckComposition:
    """Member quotas and Coordinator placement."""

    @pytest.mark.parametrize("seed", range(20))
    def test_member_counts_follow_quotas(self, seed: int) -> None:
        phase = _two_member_phase()
        deck = build_deck(phase, rng=random.Random(seed))

        counts = Counter(deck)
        assert counts[A] == 2
        assert counts[B] == 2
        assert counts[COORDINATOR] == 1

    @pytest.mark.parametrize("seed", range(20))
    def test_coordinator_spacing(self, seed: int) -> None:
        deck = build_deck(FREE_MODE_PHASE, rng=random.Random(seed))
        _assert_spacing(deck, forced_first=False)

    @pytest.mark.parametrize("seed", range(20))
    def test_forced_first_spacing(self, seed: int) -> None:
        deck = build_deck(
            STRUCTURED_PHASES[0], force_coordinator_first=True, rng=random.Random(seed)
        )

        assert deck[0] is COORDINATOR
        assert deck[1] is not COORDINATOR
        _assert_spacing(deck, forced_first=True)

    def test_default_quota_is_floor_of_budget(self) -> None:
        slots = member_slots(FREE_MODE_PHASE)

        assert Counter(slots) == {role: 2 for role in FREE_MODE_PHASE.members}

    def test_seeded_rng_is_reproducible(self) -> None:
        first = build_deck(FREE_MODE_PHASE, rng=random.Random(99))
        second = build_deck(FREE_MODE_PHASE, rng=random.Random(99))

        assert first == second


class TestExtensionRound:
    """One pass over every participant, Coordinator included."""

    def test_contains_each_participant_once(self) -> None:
        extra = build_extension_round(FREE_MODE_PHASE, rng=random.Random(5))

        assert sorted(extra, key=lambda r: r.value) == sorted(
            FREE_MODE_PHASE.participants, key=lambda r: r.value
        )
