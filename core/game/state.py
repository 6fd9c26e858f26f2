"""Game phase enumeration and the legal-action table."""

from enum import Enum


class GamePhase(Enum):
    """
    Persisted game phases.

    Flow: PLAYING → PLAYING_SPLIT (only after a split) → DEALER_TURN → SETTLED
    """

    # Acting on the main hand
    PLAYING = "playing"

    # Acting on the split hand
    PLAYING_SPLIT = "playing_split"

    # Dealer plays out, within the same request
    DEALER_TURN = "dealer_turn"

    # Outcome decided, payout pending or credited
    SETTLED = "settled"

    def __str__(self) -> str:
        return self.name.replace("_", " ").title()


class ActiveHand(Enum):
    MAIN = "main"
    SPLIT = "split"


class Action(Enum):
    """Player actions."""

    HIT = "hit"
    STAND = "stand"
    DOUBLE = "double"
    SPLIT = "split"


# Actions a phase admits at all; hand and balance conditions come on top
PHASE_ACTIONS: dict[GamePhase, frozenset[Action]] = {
    GamePhase.PLAYING: frozenset(Action),
    GamePhase.PLAYING_SPLIT: frozenset({Action.HIT, Action.STAND, Action.DOUBLE}),
    GamePhase.DEALER_TURN: frozenset(),
    GamePhase.SETTLED: frozenset(),
}

