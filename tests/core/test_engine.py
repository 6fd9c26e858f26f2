"""Tests for the game engine."""

from datetime import datetime, timedelta, timezone
from random import Random

import pytest
from hypothesis import given, settings, strategies as st

from core.errors import IllegalActionError, InsufficientFundsError
from core.game import Action, ActiveHand, BlackjackGame, EventType, GamePhase
from core.hand import HandResult, payout_for

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def snapshot(game):
    """Everything an illegal action must leave alone."""
    return (
        game.phase,
        game.active_hand,
        game.has_split,
        game.payout,
        [list(hand.cards) for hand in (game.dealer_hand, game.main_hand, game.split_hand)],
        [hand.bet for hand in (game.main_hand, game.split_hand)],
        game.deck.cards,
    )


class TestDeal:
    """Tests for the opening deal."""

    def test_deal_order_and_hidden_hole_card(self, dealt):
        game = dealt("10S", "7H", "5C", "9D")
        assert [str(c) for c in game.main_hand.cards] == ["10♠", "5♣"]
        assert game.dealer_hand.cards[0].hidden is False
        assert game.dealer_hand.cards[1].hidden is True
        assert game.dealer_hand.visible_value.total == 7
        assert game.phase is GamePhase.PLAYING
        assert game.active_hand is ActiveHand.MAIN
        assert len(game.deck) == 48
        assert game.total_cards == 52

    def test_new_game_fields(self, dealt):
        game = dealt("10S", "7H", "5C", "9D", bet=50)
        assert len(game.game_id) == 32
        assert game.user_id == "alice"
        assert game.main_bet == 50
        assert game.split_bet == 0
        assert game.created_at == START
        assert game.expires_at == START + timedelta(minutes=10)

    def test_fresh_deck_is_shuffled(self, rng):
        game = BlackjackGame.deal("alice", 100, rng=rng)
        assert game.total_cards == 52

    def test_player_blackjack_pays_three_to_two(self, dealt):
        game = dealt("AS", "7H", "KD", "9C")
        assert game.game_over
        assert game.main_hand.result is HandResult.BLACKJACK
        assert game.payout == 250
        # Revealed at settlement
        assert not any(c.hidden for c in game.dealer_hand.cards)

    def test_dealer_blackjack_loses_immediately(self, dealt):
        game = dealt("10S", "AH", "9D", "KC")
        assert game.game_over
        assert game.main_hand.result is HandResult.LOSE
        assert game.payout == 0
        assert EventType.DEALER_BLACKJACK in [e.event_type for e in game.events.history]

    def test_dealer_ten_up_blackjack(self, dealt):
        game = dealt("10S", "KH", "9D", "AC")
        assert game.game_over
        assert game.main_hand.result is HandResult.LOSE

    def test_both_naturals_push(self, dealt):
        game = dealt("AS", "AH", "KD", "QC")
        assert game.game_over
        assert game.main_hand.result is HandResult.PUSH
        assert game.payout == 100

    def test_peek_without_blackjack_keeps_hole_card_hidden(self, dealt):
        game = dealt("10S", "AH", "9D", "5C")
        assert game.phase is GamePhase.PLAYING
        assert game.dealer_hand.cards[1].hidden
        assert EventType.DEALER_PEEKED in [e.event_type for e in game.events.history]

    def test_no_peek_on_low_upcard(self, dealt):
        game = dealt("10S", "7H", "9D", "AC")
        assert game.phase is GamePhase.PLAYING
        assert EventType.DEALER_PEEKED not in [e.event_type for e in game.events.history]


class TestPlayerActions:
    """Tests for hit, stand and double."""

    def test_hit_to_bust_settles_without_dealer_play(self, dealt):
        game = dealt("10S", "7H", "5C", "9D", "KH")
        game.hit()
        assert game.main_hand.value == 25
        assert game.game_over
        assert game.main_hand.result is HandResult.LOSE
        assert game.payout == 0
        assert len(game.dealer_hand) == 2

    def test_hit_to_twenty_one_auto_stands(self, dealt):
        game = dealt("10S", "7H", "5C", "9D", "6H", "2C")
        game.hit()
        assert game.main_hand.value == 21
        assert game.game_over
        assert game.dealer_hand.value == 18
        assert game.main_hand.result is HandResult.WIN
        assert game.payout == 200

    def test_hit_keeps_playing(self, dealt):
        game = dealt("2S", "9H", "3D", "7C", "2H")
        game.hit()
        assert game.phase is GamePhase.PLAYING
        assert game.main_hand.value == 7

    def test_stand_dealer_draws_to_seventeen(self, dealt):
        game = dealt("10S", "7H", "9C", "6D", "4H")
        game.stand()
        assert game.dealer_hand.value == 17
        assert len(game.dealer_hand) == 3
        assert game.main_hand.result is HandResult.WIN
        assert game.payout == 200

    def test_dealer_hits_soft_seventeen(self, dealt):
        game = dealt("10S", "AH", "8C", "6D", "2S")
        game.stand()
        assert len(game.dealer_hand) == 3
        assert game.dealer_hand.value == 19
        assert game.main_hand.result is HandResult.LOSE

    def test_dealer_stands_on_hard_seventeen(self, dealt):
        game = dealt("10S", "10H", "7C", "7D")
        game.stand()
        assert len(game.dealer_hand) == 2
        assert game.main_hand.result is HandResult.PUSH
        assert game.payout == 100

    def test_double_bust(self, dealt):
        game = dealt("10S", "7H", "5C", "9D", "KH")
        game.double()
        assert game.main_hand.bet == 200
        assert game.main_hand.is_doubled
        assert len(game.main_hand) == 3
        assert game.main_hand.value == 25
        assert game.main_hand.result is HandResult.LOSE
        assert game.payout == 0

    def test_double_win(self, dealt):
        game = dealt("6S", "7H", "5C", "9D", "KH", "4D")
        game.double()
        assert game.main_hand.value == 21
        assert game.dealer_hand.value == 20
        assert game.payout == 400

    def test_double_only_on_two_cards(self, dealt):
        game = dealt("2S", "9H", "3D", "7C", "2H")
        game.hit()
        with pytest.raises(IllegalActionError):
            game.double()


class TestSplit:
    """Tests for splitting pairs."""

    def test_split_both_win(self, dealt):
        game = dealt("8S", "10H", "8D", "7C", "10S", "JD")
        game.split()
        assert game.has_split
        assert [str(c) for c in game.main_hand.cards] == ["8♠", "10♠"]
        assert [str(c) for c in game.split_hand.cards] == ["8♦", "J♦"]
        assert game.split_bet == 100
        assert game.phase is GamePhase.PLAYING

        game.stand()
        assert game.phase is GamePhase.PLAYING_SPLIT
        assert game.active_hand is ActiveHand.SPLIT

        game.stand()
        assert game.game_over
        assert game.main_hand.result is HandResult.WIN
        assert game.split_hand.result is HandResult.WIN
        assert game.payout == 400

    def test_split_twenty_one_is_not_blackjack(self, dealt):
        game = dealt("AS", "9H", "AD", "8C", "KS", "QD")
        game.split()
        assert game.main_hand.value == 21
        assert not game.main_hand.is_blackjack
        game.stand()
        game.stand()
        assert game.main_hand.result is HandResult.WIN
        assert game.payout == 400

    def test_bust_on_main_moves_to_split(self, dealt):
        game = dealt("8S", "10H", "8D", "7C", "5S", "JD", "9S")
        game.split()
        game.hit()
        assert game.main_hand.result is HandResult.LOSE
        assert game.active_hand is ActiveHand.SPLIT
        assert game.phase is GamePhase.PLAYING_SPLIT

        game.stand()
        assert game.split_hand.result is HandResult.WIN
        assert game.payout == 200

    def test_both_hands_bust_dealer_does_not_play(self, dealt):
        game = dealt("8S", "6H", "8D", "10C", "5S", "4D", "KS", "QH")
        game.split()
        game.hit()
        game.hit()
        assert game.game_over
        assert len(game.dealer_hand) == 2
        assert game.payout == 0

    def test_double_after_split(self, dealt):
        game = dealt("8S", "10H", "8D", "7C", "3S", "2D", "KS", "9H")
        game.split()
        game.double()
        assert game.main_hand.bet == 200
        assert game.active_hand is ActiveHand.SPLIT
        game.double()
        assert game.split_hand.value == 19
        assert game.total_bet == 400
        assert game.payout == 800

    def test_no_resplit(self, dealt):
        game = dealt("8S", "10H", "8D", "7C", "8H", "8C")
        game.split()
        with pytest.raises(IllegalActionError):
            game.split()

    def test_split_not_allowed_on_split_hand_turn(self, dealt):
        game = dealt("8S", "10H", "8D", "7C", "8H", "8C")
        game.split()
        game.stand()
        assert not game.can_split(10_000)
        with pytest.raises(IllegalActionError):
            game.split()

    def test_ten_value_cards_split(self, dealt):
        game = dealt("KS", "7H", "QD", "9C")
        assert game.can_split(1000)

    def test_unequal_cards_cannot_split(self, dealt):
        game = dealt("9S", "7H", "10D", "9C")
        with pytest.raises(IllegalActionError):
            game.split()


class TestLegality:
    """Illegal actions are rejected before any state changes."""

    @pytest.mark.parametrize("action", list(Action))
    def test_settled_game_rejects_everything(self, dealt, action):
        game = dealt("AS", "7H", "KD", "9C")
        before = snapshot(game)
        with pytest.raises(IllegalActionError):
            game.apply(action)
        assert snapshot(game) == before

    def test_rejected_double_leaves_game_unchanged(self, dealt):
        game = dealt("2S", "9H", "3D", "7C", "2H")
        game.hit()
        before = snapshot(game)
        with pytest.raises(IllegalActionError):
            game.apply(Action.DOUBLE)
        assert snapshot(game) == before

    def test_check_action_reports_stake(self, dealt):
        game = dealt("8S", "10H", "8D", "7C")
        assert game.check_action(Action.HIT, 0) == 0
        assert game.check_action(Action.STAND, 0) == 0
        assert game.check_action(Action.DOUBLE, 100) == 100
        assert game.check_action(Action.SPLIT, 100) == 100

    def test_check_action_insufficient_funds(self, dealt):
        game = dealt("8S", "10H", "8D", "7C")
        with pytest.raises(InsufficientFundsError) as exc_info:
            game.check_action(Action.DOUBLE, 99)
        assert exc_info.value.details == {"required": 100, "available": 99}

    def test_flags(self, dealt):
        game = dealt("8S", "10H", "8D", "7C")
        assert game.can_hit
        assert game.can_stand
        assert game.can_double(100)
        assert not game.can_double(50)
        assert game.can_split(100)
        assert not game.can_split(0)

    def test_flags_false_when_settled(self, dealt):
        game = dealt("AS", "7H", "KD", "9C")
        assert not game.can_hit
        assert not game.can_stand
        assert not game.can_double(10_000)
        assert not game.can_split(10_000)


class TestExpiry:
    def test_expired_after_ttl(self, dealt):
        game = dealt("10S", "7H", "5C", "9D")
        assert not game.is_expired(START + timedelta(minutes=10))
        assert game.is_expired(START + timedelta(minutes=10, seconds=1))

    def test_touch_renews_window(self, dealt):
        game = dealt("10S", "7H", "5C", "9D")
        game.touch(START + timedelta(minutes=9), ttl=timedelta(minutes=10))
        assert not game.is_expired(START + timedelta(minutes=15))

    def test_settled_game_never_expires(self, dealt):
        game = dealt("AS", "7H", "KD", "9C")
        assert not game.is_expired(START + timedelta(days=1))


class TestStateMachine:
    def test_settled_is_terminal(self, dealt):
        game = dealt("AS", "7H", "KD", "9C")
        assert game.phase is GamePhase.SETTLED
        assert game.machine.get_triggers(GamePhase.SETTLED.value) == []

    def test_restored_phase(self, stacked):
        game = BlackjackGame("g1", "alice", stacked(), phase=GamePhase.PLAYING_SPLIT, has_split=True)
        assert game.phase is GamePhase.PLAYING_SPLIT
        game.begin_dealer_turn()
        assert game.phase is GamePhase.DEALER_TURN


@settings(max_examples=200, deadline=None)
@given(
    seed=st.integers(min_value=0, max_value=2**32 - 1),
    actions=st.lists(st.sampled_from(list(Action)), max_size=12),
)
def test_cards_are_conserved(seed, actions):
    game = BlackjackGame.deal("alice", 100, rng=Random(seed), now=START)
    for action in actions:
        if game.game_over:
            break
        try:
            game.apply(action)
        except IllegalActionError:
            pass
        every_card = (
            game.deck.cards
            + game.dealer_hand.cards
            + game.main_hand.cards
            + game.split_hand.cards
        )
        assert len({card.face_up() for card in every_card}) == 52
        assert game.total_cards == 52

    if game.game_over:
        assert game.payout == sum(payout_for(h.result, h.bet) for h in game.hands)
        assert all(hand.is_resolved for hand in game.hands)
        assert not any(card.hidden for card in game.dealer_hand.cards)
