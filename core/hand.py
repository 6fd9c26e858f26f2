"""Hand evaluation for blackjack."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, NamedTuple

from core.cards import Card


class HandResult(Enum):
    """Outcome of a single hand."""

    PENDING = "pending"
    WIN = "win"
    LOSE = "lose"
    PUSH = "push"
    BLACKJACK = "blackjack"


class HandValue(NamedTuple):
    """
    Evaluated hand total.

    ``total`` is the best total after downgrading aces as needed.
    ``alternate`` is the lower total when an ace is still counted as 11,
    otherwise None. ``display`` renders both, e.g. "7/17".
    """

    total: int
    alternate: int | None
    display: str


def hand_value(cards: Iterable[Card], reveal_hidden: bool = False) -> HandValue:
    """
    Calculate the value of a sequence of cards.

    Aces count 11 and are downgraded to 1, one at a time, while the total is
    over 21. Hidden cards are skipped unless ``reveal_hidden`` is set.
    """
    total = 0
    aces = 0

    for card in cards:
        if card.hidden and not reveal_hidden:
            continue
        if card.is_ace:
            aces += 1
        total += card.value

    # Reduce aces from 11 to 1 as needed
    while total > 21 and aces > 0:
        total -= 10
        aces -= 1

    if aces > 0 and total <= 21:
        return HandValue(total, total - 10, f"{total - 10}/{total}")
    return HandValue(total, None, str(total))


def display_value(cards: Iterable[Card], reveal_hidden: bool = False) -> str:
    """Return the client display string, e.g. "7/17" for A-6."""
    return hand_value(cards, reveal_hidden).display


# The predicates below judge the real hand, so hidden cards always count.


def is_bust(cards: Iterable[Card]) -> bool:
    """Check if the cards total more than 21."""
    return hand_value(cards, reveal_hidden=True).total > 21


def is_soft(cards: Iterable[Card]) -> bool:
    """Check if an ace is currently counted as 11."""
    return hand_value(cards, reveal_hidden=True).alternate is not None


def is_natural_blackjack(cards: Iterable[Card]) -> bool:
    """Check for 21 made from exactly two cards."""
    cards = list(cards)
    return len(cards) == 2 and hand_value(cards, reveal_hidden=True).total == 21


def can_split(cards: Iterable[Card]) -> bool:
    """Check for two cards of equal value (10, J, Q and K all pair up)."""
    cards = list(cards)
    return len(cards) == 2 and cards[0].value == cards[1].value


@dataclass
class Hand:
    """A blackjack hand with its bet and outcome."""

    cards: list[Card] = field(default_factory=list)
    bet: int = 0
    is_doubled: bool = False
    is_split_hand: bool = False
    result: HandResult = HandResult.PENDING

    def add_card(self, card: Card) -> None:
        """Add a card to the hand."""
        self.cards.append(card)

    @property
    def value(self) -> int:
        """Best total counting every card, hidden or not."""
        return hand_value(self.cards, reveal_hidden=True).total

    @property
    def visible_value(self) -> HandValue:
        """Value as the player sees it (hidden cards skipped)."""
        return hand_value(self.cards)

    @property
    def is_soft(self) -> bool:
        return is_soft(self.cards)

    @property
    def is_blackjack(self) -> bool:
        """Natural blackjack. A 21 on a split hand is an ordinary 21."""
        return is_natural_blackjack(self.cards) and not self.is_split_hand

    @property
    def is_busted(self) -> bool:
        return is_bust(self.cards)

    @property
    def is_splittable(self) -> bool:
        return can_split(self.cards) and not self.is_split_hand

    @property
    def is_resolved(self) -> bool:
        return self.result is not HandResult.PENDING

    @property
    def num_cards(self) -> int:
        return len(self.cards)

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self.cards)

    def __str__(self) -> str:
        cards_str = " ".join("??" if card.hidden else str(card) for card in self.cards)
        value_str = f"({self.visible_value.display})"
        if self.is_blackjack:
            value_str = "(BLACKJACK)"
        if self.is_busted:
            value_str = "(BUST)"
        return f"{cards_str} {value_str}"

    def __repr__(self) -> str:
        return f"Hand({self.cards!r}, value={self.value})"


def compare_hands(player_hand: Hand, dealer_hand: Hand) -> HandResult:
    """
    Compare a live player hand against the dealer's final hand.

    Busted player hands and naturals are resolved before the dealer plays,
    so this only decides win, lose or push on totals.
    """
    if player_hand.is_busted:
        return HandResult.LOSE
    if dealer_hand.is_busted:
        return HandResult.WIN

    player_value = player_hand.value
    dealer_value = dealer_hand.value
    if player_value > dealer_value:
        return HandResult.WIN
    if dealer_value > player_value:
        return HandResult.LOSE
    return HandResult.PUSH


def payout_for(result: HandResult, bet: int) -> int:
    """
    Total amount returned to the player for a hand, stake included.

    Blackjack pays floor(bet * 2.5); truncation keeps fractional points out.
    """
    if result is HandResult.BLACKJACK:
        return bet * 5 // 2
    if result is HandResult.WIN:
        return bet * 2
    if result is HandResult.PUSH:
        return bet
    return 0
