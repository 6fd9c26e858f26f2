"""Card and Deck classes - immutable card representations."""

from dataclasses import dataclass, replace
from enum import Enum
from random import Random, SystemRandom
from typing import Iterator

from core.errors import DeckExhaustedError


class Suit(Enum):
    """Card suits, valued by their wire name."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"

    def __str__(self) -> str:
        symbols = {
            Suit.HEARTS: "♥",
            Suit.DIAMONDS: "♦",
            Suit.CLUBS: "♣",
            Suit.SPADES: "♠",
        }
        return symbols[self]


class Rank(Enum):
    """Card ranks, valued by their wire name."""

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"

    def __str__(self) -> str:
        return self.value

    @property
    def blackjack_value(self) -> int:
        """Return the blackjack point value (Ace = 11, face cards = 10)."""
        if self == Rank.ACE:
            return 11
        if self in (Rank.JACK, Rank.QUEEN, Rank.KING):
            return 10
        return int(self.value)

    @property
    def is_ace(self) -> bool:
        """Check if this rank is an Ace."""
        return self == Rank.ACE

    @property
    def is_ten_value(self) -> bool:
        """Check if this rank has a value of 10."""
        return self.blackjack_value == 10


@dataclass(frozen=True, slots=True)
class Card:
    """Immutable playing card.

    ``hidden`` is only ever set on the dealer's hole card.
    """

    rank: Rank
    suit: Suit
    hidden: bool = False

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"

    def __repr__(self) -> str:
        flag = ", hidden" if self.hidden else ""
        return f"Card({self.rank.name}, {self.suit.name}{flag})"

    @property
    def value(self) -> int:
        """Return the blackjack point value."""
        return self.rank.blackjack_value

    @property
    def is_ace(self) -> bool:
        """Check if this card is an Ace."""
        return self.rank.is_ace

    @property
    def is_ten_value(self) -> bool:
        """Check if this card has a value of 10."""
        return self.rank.is_ten_value

    def face_down(self) -> "Card":
        return replace(self, hidden=True)

    def face_up(self) -> "Card":
        return replace(self, hidden=False)

    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Create a card from a string like '2♣', 'AS', 'Kh', '10D'."""
        s = s.strip().upper()
        if len(s) < 2:
            raise ValueError(f"Invalid card string: {s}")

        rank_str = "10" if s[:-1] == "T" else s[:-1]
        suit_str = s[-1]

        suit_map = {
            "C": Suit.CLUBS,
            "♣": Suit.CLUBS,
            "D": Suit.DIAMONDS,
            "♦": Suit.DIAMONDS,
            "H": Suit.HEARTS,
            "♥": Suit.HEARTS,
            "S": Suit.SPADES,
            "♠": Suit.SPADES,
        }

        try:
            rank = Rank(rank_str)
        except ValueError:
            raise ValueError(f"Invalid rank: {rank_str}") from None
        if suit_str not in suit_map:
            raise ValueError(f"Invalid suit: {suit_str}")

        return cls(rank, suit_map[suit_str])


def new_deck() -> list[Card]:
    """Return all 52 cards in canonical order (suit by suit, Ace to King)."""
    return [Card(rank, suit) for suit in Suit for rank in Rank]


def shuffle(cards: list[Card], rng: Random | None = None) -> list[Card]:
    """
    Return a Fisher-Yates shuffled copy of ``cards``.

    The default source is the operating system CSPRNG so the order cannot be
    predicted from earlier games. Tests pass a seeded ``Random``.
    """
    shuffled = list(cards)
    (rng or SystemRandom()).shuffle(shuffled)
    return shuffled


class Deck:
    """A single 52-card deck owned by one game. The top card is the last one."""

    def __init__(self, cards: list[Card] | None = None, rng: Random | None = None) -> None:
        """
        Initialize a deck.

        Args:
            cards: Remaining cards, e.g. restored from a snapshot. A fresh
                ordered deck is built when omitted.
            rng: Random number generator for shuffling
        """
        self._rng = rng or SystemRandom()
        self._cards: list[Card] = list(cards) if cards is not None else new_deck()

    def shuffle(self) -> None:
        """Shuffle the remaining cards."""
        self._cards = shuffle(self._cards, self._rng)

    def draw(self) -> Card:
        """Draw a card from the top of the deck."""
        if not self._cards:
            raise DeckExhaustedError()
        return self._cards.pop()

    @property
    def cards(self) -> list[Card]:
        """Return a copy of the remaining cards, bottom first."""
        return list(self._cards)

    @property
    def cards_remaining(self) -> int:
        """Return the number of cards remaining."""
        return len(self._cards)

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)
