"""Tests for hand evaluation."""

import pytest

from core.cards import Card, Rank, Suit
from core.hand import (
    Hand,
    HandResult,
    can_split,
    compare_hands,
    display_value,
    hand_value,
    is_bust,
    is_natural_blackjack,
    is_soft,
    payout_for,
)


def cards(*names):
    return [Card.from_string(n) for n in names]


class TestHandValue:
    """Tests for hand_value and the predicates built on it."""

    def test_empty(self):
        assert hand_value([]) == (0, None, "0")

    def test_soft_seventeen(self):
        value = hand_value(cards("AS", "6H"))
        assert value.total == 17
        assert value.alternate == 7
        assert value.display == "7/17"
        assert is_soft(cards("AS", "6H"))

    def test_hard_seventeen(self):
        value = hand_value(cards("10S", "7H"))
        assert value == (17, None, "17")
        assert not is_soft(cards("10S", "7H"))

    def test_ace_downgraded_when_over(self):
        assert hand_value(cards("AS", "6H", "10D")).display == "17"

    def test_multiple_aces(self):
        assert hand_value(cards("AS", "AH")).display == "2/12"
        assert hand_value(cards("AS", "AH", "9D")).total == 21
        assert hand_value(cards("AS", "AH", "AD", "AC")).display == "4/14"

    def test_bust(self):
        assert hand_value(cards("10S", "9H", "5D")).total == 24
        assert is_bust(cards("10S", "9H", "5D"))
        assert not is_bust(cards("10S", "9H", "2D"))

    def test_hidden_cards_skipped_unless_revealed(self):
        hand = [Card(Rank.KING, Suit.SPADES), Card(Rank.ACE, Suit.HEARTS, hidden=True)]
        assert hand_value(hand).total == 10
        assert hand_value(hand, reveal_hidden=True).total == 21
        assert display_value(hand) == "10"

    def test_predicates_count_hidden_cards(self):
        hand = [Card(Rank.KING, Suit.SPADES), Card(Rank.ACE, Suit.HEARTS, hidden=True)]
        assert is_natural_blackjack(hand)

    def test_natural_needs_two_cards(self):
        assert is_natural_blackjack(cards("AS", "KH"))
        assert is_natural_blackjack(cards("10S", "AH"))
        assert not is_natural_blackjack(cards("7S", "7H", "7D"))

    @pytest.mark.parametrize(
        "pair, expected",
        [
            (("8S", "8H"), True),
            (("KS", "QH"), True),
            (("10S", "JH"), True),
            (("AS", "AH"), True),
            (("9S", "10H"), False),
            (("8S", "8H", "8D"), False),
        ],
    )
    def test_can_split(self, pair, expected):
        assert can_split(cards(*pair)) is expected


class TestHand:
    """Tests for the Hand class."""

    def test_add_card(self):
        hand = Hand()
        hand.add_card(Card(Rank.FIVE, Suit.CLUBS))
        assert hand.num_cards == 1
        assert hand.value == 5

    def test_blackjack(self):
        hand = Hand(cards=cards("AS", "KH"))
        assert hand.is_blackjack
        assert str(hand).endswith("(BLACKJACK)")

    def test_split_hand_twenty_one_is_not_blackjack(self):
        hand = Hand(cards=cards("AS", "KH"), is_split_hand=True)
        assert not hand.is_blackjack
        assert hand.value == 21

    def test_split_hand_cannot_split_again(self):
        assert Hand(cards=cards("8S", "8H")).is_splittable
        assert not Hand(cards=cards("8S", "8H"), is_split_hand=True).is_splittable

    def test_visible_value_hides_hole_card(self):
        hand = Hand(cards=[Card(Rank.NINE, Suit.CLUBS), Card(Rank.SEVEN, Suit.HEARTS, hidden=True)])
        assert hand.visible_value.total == 9
        assert hand.value == 16
        assert str(hand) == "9♣ ?? (9)"

    def test_resolved(self):
        hand = Hand()
        assert not hand.is_resolved
        hand.result = HandResult.PUSH
        assert hand.is_resolved


class TestCompareHands:
    """Tests for comparing a player hand to the dealer."""

    def test_player_wins_higher_value(self):
        assert compare_hands(Hand(cards("10S", "9H")), Hand(cards("10D", "8C"))) is HandResult.WIN

    def test_dealer_wins_higher_value(self):
        assert compare_hands(Hand(cards("10S", "7H")), Hand(cards("10D", "9C"))) is HandResult.LOSE

    def test_push(self):
        assert compare_hands(Hand(cards("10S", "8H")), Hand(cards("9D", "9C"))) is HandResult.PUSH

    def test_dealer_bust_player_wins(self):
        dealer = Hand(cards("10D", "6C", "9H"))
        assert compare_hands(Hand(cards("10S", "2H")), dealer) is HandResult.WIN

    def test_player_bust_loses_even_if_dealer_busts(self):
        player = Hand(cards("10S", "5H", "KH"))
        dealer = Hand(cards("10D", "6C", "9S"))
        assert compare_hands(player, dealer) is HandResult.LOSE


class TestPayout:
    @pytest.mark.parametrize(
        "result, bet, expected",
        [
            (HandResult.BLACKJACK, 100, 250),
            (HandResult.BLACKJACK, 15, 37),
            (HandResult.WIN, 100, 200),
            (HandResult.PUSH, 100, 100),
            (HandResult.LOSE, 100, 0),
        ],
    )
    def test_payout_for(self, result, bet, expected):
        assert payout_for(result, bet) == expected
