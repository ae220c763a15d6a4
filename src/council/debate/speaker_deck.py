"""Council Speaker Deck Generator

Builds the per-phase turn order.

Algorithm:
1. Expand each Member into quota_for(role) slots
2. Shuffle the Member slots (injectable random source)
3. Interleave the Coordinator after every 2 consecutive Members, never after
   the final Member
4. Optionally prepend one Coordinator (phase/step start)

Resulting length: M + (M - 1) // 2, plus 1 when the Coordinator is forced
first. Exact order is random; composition and spacing are not.
"""

from __future__ import annotations

import random

from council.models.catalog import COORDINATOR, PhaseDefinition, Role

COORDINATOR_INTERVAL = 2
"""Coordinator is interleaved after this many consecutive Member turns."""


def member_slots(phase: PhaseDefinition) -> list[Role]:
    """Expand phase Members into their quota of deck slots, unshuffled."""
    slots: list[Role] = []
    for role in phase.members:
        slots.extend([role] * phase.quota_for(role))
    return slots


def build_deck(
    phase: PhaseDefinition,
    force_coordinator_first: bool = False,
    rng: random.Random | None = None,
) -> list[Role]:
    """Build the speaker deck for a phase.

    Args:
        phase: Phase whose participants and quotas drive the deck.
        force_coordinator_first: Prepend one Coordinator entry so it declares
            the upcoming step before Members speak.
        rng: Random source. Uses a fresh unseeded Random if not provided.

    Returns:
        Ordered list of roles; index 0 speaks next.
    """
    rng = rng or random.Random()

    members = member_slots(phase)
    rng.shuffle(members)

    deck: list[Role] = [COORDINATOR] if force_coordinator_first else []
    for index, role in enumerate(members):
        deck.append(role)
        is_last = index == len(members) - 1
        if (index + 1) % COORDINATOR_INTERVAL == 0 and not is_last:
            deck.append(COORDINATOR)

    return deck


def build_extension_round(phase: PhaseDefinition, rng: random.Random | None = None) -> list[Role]:
    """One shuffled pass over every phase participant, Coordinator included."""
    rng = rng or random.Random()
    extra = list(phase.participants)
    rng.shuffle(extra)
    return extra


def expected_deck_length(member_count: int, force_coordinator_first: bool = False) -> int:
    """Deck length for a given number of Member slots."""
    if member_count <= 0:
        return 1 if force_coordinator_first else 0
    return member_count + (member_count - 1) // COORDINATOR_INTERVAL + int(force_coordinator_first)
