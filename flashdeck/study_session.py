"""
This module defines the study session state machine: one ephemeral pass
over a shuffled copy of a deck's cards with per-card correct/incorrect
outcomes.

The session state is an immutable `SessionSnapshot` value. Every transition
is a pure function from one snapshot to the next, and `StudySession` is the
single controller that owns the current snapshot. Nothing here touches
storage.
"""

import logging
import math
import random
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Tuple

from .models import Card, CardOutcome, Direction, SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionStats:
    """
    Statistics derived from a snapshot. Never stored, always recomputed.

    `accuracy` uses the total card count as its denominator, not the number
    of answered cards, so it only reaches 100 once every card is correct.
    """

    total: int
    correct: int
    incorrect: int
    answered: int
    accuracy: int
    progress: float


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Immutable state of one study pass.

    Invariants: `len(outcomes) == len(cards)`; `position` is within
    `[0, len(cards))` for a non-empty snapshot and None for an empty one.
    """

    cards: Tuple[Card, ...] = ()
    outcomes: Tuple[CardOutcome, ...] = ()
    position: Optional[int] = None
    flipped: bool = False

    @property
    def state(self) -> SessionState:
        if not self.cards:
            return SessionState.Empty
        if all(outcome != CardOutcome.Unanswered for outcome in self.outcomes):
            return SessionState.Finished
        return SessionState.Active

    @property
    def current_card(self) -> Optional[Card]:
        if self.position is None or not 0 <= self.position < len(self.cards):
            return None
        return self.cards[self.position]

    @property
    def stats(self) -> SessionStats:
        return compute_stats(self)


def shuffle_cards(
    cards: Iterable[Card], rng: Optional[random.Random] = None
) -> Tuple[Card, ...]:
    """
    Return a uniformly random permutation of `cards` without touching the input.

    `random.Random.shuffle` is an in-place Fisher-Yates shuffle, so every
    permutation is equally likely.
    """
    shuffled = list(cards)
    (rng or random).shuffle(shuffled)
    return tuple(shuffled)


def start_snapshot(
    cards: Iterable[Card], rng: Optional[random.Random] = None
) -> SessionSnapshot:
    """Build the initial snapshot for a fresh pass over `cards`."""
    shuffled = shuffle_cards(cards, rng)
    if not shuffled:
        return SessionSnapshot()
    return SessionSnapshot(
        cards=shuffled,
        outcomes=(CardOutcome.Unanswered,) * len(shuffled),
        position=0,
        flipped=False,
    )


def apply_flip(snapshot: SessionSnapshot) -> SessionSnapshot:
    """Toggle the flip flag. No-op unless the session is active."""
    if snapshot.state is not SessionState.Active:
        return snapshot
    return replace(snapshot, flipped=not snapshot.flipped)


def apply_mark(snapshot: SessionSnapshot, correct: bool) -> SessionSnapshot:
    """
    Record an outcome at the current position, overwriting any earlier one,
    then advance by one (clamped at the last card) and show the front again.
    """
    if snapshot.state is not SessionState.Active or snapshot.current_card is None:
        return snapshot

    position = snapshot.position
    outcomes = list(snapshot.outcomes)
    outcomes[position] = CardOutcome.Correct if correct else CardOutcome.Incorrect
    next_position = min(position + 1, len(snapshot.cards) - 1)
    return replace(
        snapshot,
        outcomes=tuple(outcomes),
        position=next_position,
        flipped=False,
    )


def apply_navigate(
    snapshot: SessionSnapshot, direction: Direction
) -> SessionSnapshot:
    """Move one card back or forward, clamped at both ends."""
    if snapshot.state is not SessionState.Active or snapshot.position is None:
        return snapshot

    step = -1 if direction is Direction.Previous else 1
    position = max(0, min(snapshot.position + step, len(snapshot.cards) - 1))
    return replace(snapshot, position=position, flipped=False)


def _round_half_up_percent(numerator: int, denominator: int) -> int:
    # Rounds the float percentage, so 57/200 (28.499999999999996) gives 28.
    return math.floor(numerator / denominator * 100 + 0.5)


def compute_stats(snapshot: SessionSnapshot) -> SessionStats:
    total = len(snapshot.cards)
    correct = sum(1 for o in snapshot.outcomes if o is CardOutcome.Correct)
    incorrect = sum(1 for o in snapshot.outcomes if o is CardOutcome.Incorrect)
    answered = correct + incorrect
    if total == 0:
        return SessionStats(
            total=0, correct=0, incorrect=0, answered=0, accuracy=0, progress=0.0
        )
    return SessionStats(
        total=total,
        correct=correct,
        incorrect=incorrect,
        answered=answered,
        accuracy=_round_half_up_percent(correct, total),
        progress=min(100.0, answered / total * 100),
    )


@dataclass
class StudySession:
    """
    Controller for one study pass over a fixed card set.

    Every operation is synchronous and safe to call in any state: input that
    arrives after the machine has left the state an operation needs (e.g. a
    key press after the last card) is ignored rather than raised. Each
    transition method returns True when it changed the session.
    """

    cards: Tuple[Card, ...] = ()
    rng: Optional[random.Random] = field(default=None, repr=False)
    snapshot: SessionSnapshot = field(init=False)

    def __post_init__(self) -> None:
        self.cards = tuple(self.cards)
        self.snapshot = start_snapshot(self.cards, self.rng)
        logger.debug(
            f"Study session created with {len(self.cards)} card(s), "
            f"state {self.snapshot.state.value}"
        )

    # --- Transitions ---

    def start(self, cards: Iterable[Card]) -> None:
        """Replace the card set and begin a fresh, reshuffled pass."""
        self.cards = tuple(cards)
        self.restart()

    def restart(self) -> None:
        """Reshuffle and reset all progress. Defined in every state."""
        self.snapshot = start_snapshot(self.cards, self.rng)
        logger.debug(
            f"Study session restarted, state {self.snapshot.state.value}"
        )

    def flip(self) -> bool:
        return self._transition(apply_flip(self.snapshot), "flip")

    def mark(self, correct: bool) -> bool:
        return self._transition(apply_mark(self.snapshot, correct), "mark")

    def navigate(self, direction: Direction) -> bool:
        return self._transition(
            apply_navigate(self.snapshot, Direction(direction)), "navigate"
        )

    def next(self) -> bool:
        return self.navigate(Direction.Next)

    def previous(self) -> bool:
        return self.navigate(Direction.Previous)

    def _transition(self, new_snapshot: SessionSnapshot, name: str) -> bool:
        if new_snapshot == self.snapshot:
            logger.debug(
                f"Ignored '{name}' in state {self.snapshot.state.value}"
            )
            return False
        previous_state = self.snapshot.state
        self.snapshot = new_snapshot
        if new_snapshot.state is not previous_state:
            logger.info(
                f"Study session moved from {previous_state.value} "
                f"to {new_snapshot.state.value}"
            )
        return True

    # --- Read-only derived state ---

    @property
    def state(self) -> SessionState:
        return self.snapshot.state

    @property
    def position(self) -> Optional[int]:
        return self.snapshot.position

    @property
    def current_card(self) -> Optional[Card]:
        return self.snapshot.current_card

    @property
    def is_flipped(self) -> bool:
        return self.snapshot.flipped

    @property
    def outcomes(self) -> Tuple[CardOutcome, ...]:
        return self.snapshot.outcomes

    @property
    def order(self) -> Tuple[Card, ...]:
        """The shuffled order of the current pass."""
        return self.snapshot.cards

    @property
    def stats(self) -> SessionStats:
        return self.snapshot.stats

    def outcome_at(self, position: int) -> Optional[CardOutcome]:
        """Outcome recorded at `position`, or None when out of range."""
        if not 0 <= position < len(self.snapshot.outcomes):
            return None
        return self.snapshot.outcomes[position]
