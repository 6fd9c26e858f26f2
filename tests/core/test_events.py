"""Tests for the game event system."""

from core.game import EventType, GameEvent
from core.game.events import EventEmitter


class TestEventEmitter:
    def test_typed_and_catch_all_handlers(self):
        emitter = EventEmitter()
        typed, everything = [], []
        emitter.subscribe(typed.append, EventType.PLAYER_HIT)
        emitter.subscribe(everything.append)

        emitter.emit_new(EventType.PLAYER_HIT, hand="main")
        emitter.emit_new(EventType.PLAYER_STAND, hand="main")

        assert [e.event_type for e in typed] == [EventType.PLAYER_HIT]
        assert [e.event_type for e in everything] == [EventType.PLAYER_HIT, EventType.PLAYER_STAND]

    def test_history_is_a_copy(self):
        emitter = EventEmitter()
        emitter.emit(GameEvent(EventType.GAME_STARTED))
        emitter.history.clear()
        assert len(emitter.history) == 1

    def test_event_str(self):
        event = GameEvent(EventType.HAND_BUSTED, {"hand": "split"})
        assert str(event) == "HAND_BUSTED: {'hand': 'split'}"
        assert event.timestamp.tzinfo is not None


class TestGameEvents:
    """Events a game emits while it is played."""

    def test_deal_events(self, dealt):
        game = dealt("10S", "7H", "5C", "9D")
        types = [e.event_type for e in game.events.history]
        assert types.count(EventType.CARD_DEALT) == 4
        assert types[-1] is EventType.GAME_STARTED

    def test_hole_card_never_logged_face_up_before_reveal(self, dealt):
        game = dealt("10S", "7H", "5C", "9D")
        dealt_cards = [e.data["card"] for e in game.events.history if e.event_type is EventType.CARD_DEALT]
        assert dealt_cards[-1] == "??"

    def test_settlement_events(self, dealt):
        game = dealt("10S", "7H", "9C", "6D", "4H")
        seen = []
        game.subscribe(seen.append)
        game.stand()
        types = [e.event_type for e in seen]
        assert types[0] is EventType.PLAYER_STAND
        assert EventType.DEALER_REVEALS in types
        assert EventType.DEALER_HITS in types
        assert EventType.DEALER_STANDS in types
        assert types[-1] is EventType.GAME_SETTLED
        assert seen[-1].data["payout"] == 200

    def test_split_switch_event(self, dealt):
        game = dealt("8S", "10H", "8D", "7C", "10S", "JD")
        game.split()
        seen = []
        game.subscribe(seen.append, EventType.ACTIVE_HAND_CHANGED)
        game.stand()
        assert [e.data for e in seen] == [{"hand": "split"}]
