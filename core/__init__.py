"""Core blackjack engine - 100% transport-agnostic."""

from core.cards import Card, Deck, Rank, Suit, new_deck, shuffle
from core.hand import Hand, HandResult, HandValue, hand_value

__all__ = [
    "Card",
    "Deck",
    "Rank",
    "Suit",
    "new_deck",
    "shuffle",
    "Hand",
    "HandResult",
    "HandValue",
    "hand_value",
]
