"""Blackjack game engine with state machine."""

from datetime import datetime, timedelta, timezone
from random import Random
from uuid import uuid4

from transitions import Machine

from core.cards import Card, Deck
from core.errors import IllegalActionError, InsufficientFundsError
from core.hand import Hand, HandResult, can_split, compare_hands, payout_for
from core.game.events import EventEmitter, EventHandler, EventType
from core.game.state import PHASE_ACTIONS, Action, ActiveHand, GamePhase

# House policy: the dealer draws on soft 17
DEALER_HITS_SOFT_17 = True

DEFAULT_TTL = timedelta(minutes=10)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlackjackGame:
    """
    One player's blackjack game against the house.

    The game is the authoritative aggregate: it owns the deck, validates every
    action against the legal-action table before touching any state, and
    settles itself once no player hand is left to act on. It never touches a
    balance; callers debit the stake reported by ``check_action`` before
    applying an action and credit ``payout`` once the game is settled.
    """

    # State machine states
    STATES = [p.value for p in GamePhase]

    # State machine transitions
    TRANSITIONS = [
        {"trigger": "switch_to_split", "source": "playing", "dest": "playing_split"},
        {
            "trigger": "begin_dealer_turn",
            "source": ["playing", "playing_split"],
            "dest": "dealer_turn",
        },
        {
            "trigger": "finish_round",
            "source": ["playing", "playing_split", "dealer_turn"],
            "dest": "settled",
        },
    ]

    def __init__(
        self,
        game_id: str,
        user_id: str,
        deck: Deck,
        *,
        dealer_hand: Hand | None = None,
        main_hand: Hand | None = None,
        split_hand: Hand | None = None,
        phase: GamePhase = GamePhase.PLAYING,
        active_hand: ActiveHand = ActiveHand.MAIN,
        has_split: bool = False,
        payout: int = 0,
        created_at: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        """
        Initialize a game, either fresh or restored from a snapshot.

        Use ``BlackjackGame.deal`` to start a new game.
        """
        self.game_id = game_id
        self.user_id = user_id
        self.deck = deck
        self.dealer_hand = dealer_hand if dealer_hand is not None else Hand()
        self.main_hand = main_hand if main_hand is not None else Hand()
        self.split_hand = split_hand if split_hand is not None else Hand(is_split_hand=True)
        self.active_hand = active_hand
        self.has_split = has_split
        self.payout = payout
        self.created_at = created_at or utcnow()
        self.expires_at = expires_at or self.created_at + DEFAULT_TTL
        self.events = EventEmitter()

        # Initialize state machine
        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial=phase.value,
            auto_transitions=False,
            model_attribute="_machine_state",
        )

    @classmethod
    def deal(
        cls,
        user_id: str,
        bet: int,
        *,
        deck: Deck | None = None,
        rng: Random | None = None,
        now: datetime | None = None,
        ttl: timedelta = DEFAULT_TTL,
        handler: EventHandler | None = None,
    ) -> "BlackjackGame":
        """
        Shuffle a fresh deck and deal the opening cards.

        Args:
            user_id: Owning user
            bet: Main bet, already debited by the caller
            deck: Pre-arranged deck; a fresh CSPRNG-shuffled deck when omitted
            rng: Random number generator for the fresh deck
            now: Creation time
            ttl: Abandonment window
            handler: Event handler subscribed before the first card is dealt

        Returns:
            The new game. It is already settled when a natural decided it.
        """
        if deck is None:
            deck = Deck(rng=rng)
            deck.shuffle()

        created_at = now or utcnow()
        game = cls(
            game_id=uuid4().hex,
            user_id=user_id,
            deck=deck,
            main_hand=Hand(bet=bet),
            created_at=created_at,
            expires_at=created_at + ttl,
        )
        if handler is not None:
            game.subscribe(handler)
        game._deal_initial_cards()
        return game

    @property
    def phase(self) -> GamePhase:
        """Get current phase as enum."""
        return GamePhase(self._machine_state)  # type: ignore[attr-defined]

    @property
    def game_over(self) -> bool:
        return self.phase is GamePhase.SETTLED

    @property
    def hands(self) -> list[Hand]:
        """Player hands in play order."""
        if self.has_split:
            return [self.main_hand, self.split_hand]
        return [self.main_hand]

    @property
    def current_hand(self) -> Hand:
        if self.active_hand is ActiveHand.SPLIT:
            return self.split_hand
        return self.main_hand

    @property
    def main_bet(self) -> int:
        return self.main_hand.bet

    @property
    def split_bet(self) -> int:
        return self.split_hand.bet if self.has_split else 0

    @property
    def total_bet(self) -> int:
        """Everything debited for this game so far."""
        return self.main_bet + self.split_bet

    @property
    def total_cards(self) -> int:
        return (
            len(self.deck)
            + len(self.dealer_hand)
            + len(self.main_hand)
            + len(self.split_hand)
        )

    def subscribe(self, handler: EventHandler, event_type: EventType | None = None) -> None:
        """Subscribe to game events."""
        self.events.subscribe(handler, event_type)

    # Expiry

    def touch(self, now: datetime | None = None, ttl: timedelta = DEFAULT_TTL) -> None:
        """Renew the abandonment window after an action."""
        self.expires_at = (now or utcnow()) + ttl

    def is_expired(self, now: datetime | None = None) -> bool:
        """A settled game never expires; its payout is still owed."""
        return not self.game_over and (now or utcnow()) > self.expires_at

    # Legality

    def _require(self, action: Action) -> Hand:
        """Validate an action without mutating anything. Returns the hand it acts on."""
        phase = self.phase
        if action not in PHASE_ACTIONS[phase]:
            raise IllegalActionError(f"Cannot {action.value} while the game is {phase.value}")

        hand = self.current_hand
        if action is Action.DOUBLE and (len(hand) != 2 or hand.is_doubled):
            raise IllegalActionError("Can only double on the first two cards of a hand")
        if action is Action.SPLIT and (self.has_split or not can_split(self.main_hand.cards)):
            raise IllegalActionError("Hand cannot be split")
        return hand

    def stake_for(self, action: Action) -> int:
        """Additional amount an action locks in."""
        if action is Action.DOUBLE:
            return self.current_hand.bet
        if action is Action.SPLIT:
            return self.main_hand.bet
        return 0

    def check_action(self, action: Action, balance: int) -> int:
        """
        Validate an action against the table and the player's balance.

        Args:
            action: Requested action
            balance: Player's current balance

        Returns:
            Stake to debit before the action is applied (0 for hit and stand)

        Raises:
            IllegalActionError: wrong phase or hand shape
            InsufficientFundsError: balance cannot cover the stake
        """
        self._require(action)
        stake = self.stake_for(action)
        if stake > balance:
            raise InsufficientFundsError(required=stake, available=balance)
        return stake

    def is_allowed(self, action: Action, balance: int) -> bool:
        try:
            self.check_action(action, balance)
        except (IllegalActionError, InsufficientFundsError):
            return False
        return True

    @property
    def can_hit(self) -> bool:
        return Action.HIT in PHASE_ACTIONS[self.phase]

    @property
    def can_stand(self) -> bool:
        return Action.STAND in PHASE_ACTIONS[self.phase]

    def can_double(self, balance: int) -> bool:
        return self.is_allowed(Action.DOUBLE, balance)

    def can_split(self, balance: int) -> bool:
        return self.is_allowed(Action.SPLIT, balance)

    # Actions

    def apply(self, action: Action) -> None:
        """Apply a player action. Stakes must already be debited."""
        handlers = {
            Action.HIT: self.hit,
            Action.STAND: self.stand,
            Action.DOUBLE: self.double,
            Action.SPLIT: self.split,
        }
        handlers[action]()

    def hit(self) -> None:
        """Player hits (takes another card)."""
        hand = self._require(Action.HIT)

        card = self._draw_into(hand)
        self.events.emit_new(
            EventType.PLAYER_HIT,
            hand=self.active_hand.value,
            card=str(card),
            hand_value=hand.value,
        )

        if hand.is_busted:
            self._bust(hand)
            self._finish_active_hand()
        elif hand.value == 21:
            # Nothing left to gain; the hand stands on its own
            self._finish_active_hand()

    def stand(self) -> None:
        """Player stands (keeps current hand)."""
        hand = self._require(Action.STAND)
        self.events.emit_new(
            EventType.PLAYER_STAND,
            hand=self.active_hand.value,
            hand_value=hand.value,
        )
        self._finish_active_hand()

    def double(self) -> None:
        """Player doubles down: double the bet, take one card, stand."""
        hand = self._require(Action.DOUBLE)

        hand.bet *= 2
        hand.is_doubled = True

        card = self._draw_into(hand)
        self.events.emit_new(
            EventType.PLAYER_DOUBLE,
            hand=self.active_hand.value,
            card=str(card),
            hand_value=hand.value,
            new_bet=hand.bet,
        )

        if hand.is_busted:
            self._bust(hand)
        self._finish_active_hand()

    def split(self) -> None:
        """Player splits the main hand into two hands with equal bets."""
        self._require(Action.SPLIT)

        second_card = self.main_hand.cards.pop()
        self.split_hand = Hand(cards=[second_card], bet=self.main_hand.bet, is_split_hand=True)
        self.main_hand.is_split_hand = True
        self.has_split = True
        self.active_hand = ActiveHand.MAIN

        # Deal one card to each hand
        self._draw_into(self.main_hand)
        self._draw_into(self.split_hand)

        self.events.emit_new(
            EventType.PLAYER_SPLIT,
            main_value=self.main_hand.value,
            split_value=self.split_hand.value,
            split_bet=self.split_hand.bet,
        )

    # Internals

    def _hand_name(self, hand: Hand) -> str:
        if hand is self.dealer_hand:
            return "dealer"
        if hand is self.split_hand:
            return ActiveHand.SPLIT.value
        return ActiveHand.MAIN.value

    def _draw_into(self, hand: Hand, face_up: bool = True) -> Card:
        """Deal a card to a hand."""
        card = self.deck.draw()
        if not face_up:
            card = card.face_down()
        hand.add_card(card)
        self.events.emit_new(
            EventType.CARD_DEALT,
            card="??" if card.hidden else str(card),
            hand=self._hand_name(hand),
        )
        return card

    def _deal_initial_cards(self) -> None:
        """Deal player, dealer, player, dealer (face down) and check naturals."""
        self._draw_into(self.main_hand)
        self._draw_into(self.dealer_hand)
        self._draw_into(self.main_hand)
        self._draw_into(self.dealer_hand, face_up=False)

        self.events.emit_new(
            EventType.GAME_STARTED,
            game_id=self.game_id,
            user_id=self.user_id,
            bet=self.main_bet,
        )

        upcard = self.dealer_hand.cards[0]
        player_bj = self.main_hand.is_blackjack
        if not (player_bj or upcard.is_ace or upcard.is_ten_value):
            return

        # Peek at the hole card; it stays hidden if the game goes on
        dealer_bj = self.dealer_hand.is_blackjack
        self.events.emit_new(EventType.DEALER_PEEKED, upcard=str(upcard))

        if player_bj:
            self.events.emit_new(EventType.PLAYER_BLACKJACK)
        if dealer_bj:
            self.events.emit_new(EventType.DEALER_BLACKJACK)

        if player_bj and dealer_bj:
            self.main_hand.result = HandResult.PUSH
        elif player_bj:
            self.main_hand.result = HandResult.BLACKJACK
        elif dealer_bj:
            self.main_hand.result = HandResult.LOSE
        else:
            return
        self._settle()

    def _bust(self, hand: Hand) -> None:
        hand.result = HandResult.LOSE
        self.events.emit_new(
            EventType.HAND_BUSTED,
            hand=self._hand_name(hand),
            hand_value=hand.value,
        )

    def _finish_active_hand(self) -> None:
        """Move to the split hand, the dealer, or straight to settlement."""
        if self.has_split and self.active_hand is ActiveHand.MAIN:
            self.active_hand = ActiveHand.SPLIT
            self.switch_to_split()  # type: ignore[attr-defined]
            self.events.emit_new(EventType.ACTIVE_HAND_CHANGED, hand=ActiveHand.SPLIT.value)
            return

        if all(hand.is_busted for hand in self.hands):
            # Nothing to compare against the dealer
            self._settle()
            return

        self.begin_dealer_turn()  # type: ignore[attr-defined]
        self._play_dealer()
        self._settle()

    def _reveal_hole_card(self) -> None:
        hidden = [card for card in self.dealer_hand.cards if card.hidden]
        if not hidden:
            return
        self.dealer_hand.cards = [card.face_up() for card in self.dealer_hand.cards]
        self.events.emit_new(
            EventType.DEALER_REVEALS,
            card=str(hidden[0].face_up()),
            hand_value=self.dealer_hand.value,
        )

    def _play_dealer(self) -> None:
        """Dealer plays their hand."""
        self._reveal_hole_card()

        while self._dealer_should_hit():
            self._draw_into(self.dealer_hand)
            self.events.emit_new(EventType.DEALER_HITS, hand_value=self.dealer_hand.value)

        if self.dealer_hand.is_busted:
            self.events.emit_new(EventType.DEALER_BUSTS, hand_value=self.dealer_hand.value)
        else:
            self.events.emit_new(EventType.DEALER_STANDS, hand_value=self.dealer_hand.value)

    def _dealer_should_hit(self) -> bool:
        """Determine if dealer should hit."""
        value = self.dealer_hand.value
        if value < 17:
            return True
        if value == 17 and self.dealer_hand.is_soft and DEALER_HITS_SOFT_17:
            return True
        return False

    def _settle(self) -> None:
        """Resolve every pending hand and compute the payout."""
        self._reveal_hole_card()

        for hand in self.hands:
            if not hand.is_resolved:
                hand.result = compare_hands(hand, self.dealer_hand)
            self.events.emit_new(
                EventType.HAND_RESOLVED,
                hand=self._hand_name(hand),
                result=hand.result.value,
                bet=hand.bet,
                payout=payout_for(hand.result, hand.bet),
            )

        self.payout = sum(payout_for(hand.result, hand.bet) for hand in self.hands)
        self.finish_round()  # type: ignore[attr-defined]
        self.events.emit_new(
            EventType.GAME_SETTLED,
            game_id=self.game_id,
            total_bet=self.total_bet,
            payout=self.payout,
        )

    def __repr__(self) -> str:
        return (
            f"BlackjackGame({self.game_id}, user={self.user_id}, "
            f"phase={self.phase.value}, active={self.active_hand.value})"
        )
