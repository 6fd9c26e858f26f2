"""Game snapshot serialization for the game store."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from core.cards import Card, Deck, Rank, Suit
from core.game import ActiveHand, BlackjackGame, GamePhase
from core.hand import Hand, HandResult

SNAPSHOT_VERSION = 1


def serialize_card(card: Card) -> dict[str, Any]:
    """Serialize a card to a dict."""
    return {"suit": card.suit.value, "rank": card.rank.value, "hidden": card.hidden}


def deserialize_card(data: dict[str, Any]) -> Card:
    """Deserialize a card from a dict."""
    return Card(Rank(data["rank"]), Suit(data["suit"]), hidden=data.get("hidden", False))


def serialize_hand(hand: Hand) -> dict[str, Any]:
    """Serialize a hand to a dict. Bets live on the game, not the hand."""
    return {
        "cards": [serialize_card(c) for c in hand.cards],
        "is_doubled": hand.is_doubled,
        "result": hand.result.value,
    }


def deserialize_hand(data: dict[str, Any], bet: int = 0, is_split_hand: bool = False) -> Hand:
    """Deserialize a hand from a dict."""
    return Hand(
        cards=[deserialize_card(c) for c in data["cards"]],
        bet=bet,
        is_doubled=data["is_doubled"],
        is_split_hand=is_split_hand,
        result=HandResult(data["result"]),
    )


def serialize_game(game: BlackjackGame) -> dict[str, Any]:
    """Serialize game state for the store."""
    return {
        "version": SNAPSHOT_VERSION,
        "game_id": game.game_id,
        "user_id": game.user_id,
        "phase": game.phase.value,
        "active_hand": game.active_hand.value,
        "has_split": game.has_split,
        "main_bet": game.main_bet,
        "split_bet": game.split_bet,
        "payout": game.payout,
        "deck": [serialize_card(c) for c in game.deck.cards],
        "dealer_hand": serialize_hand(game.dealer_hand),
        "main_hand": serialize_hand(game.main_hand),
        "split_hand": serialize_hand(game.split_hand),
        "created_at": game.created_at.isoformat(),
        "expires_at": game.expires_at.isoformat(),
    }


def deserialize_game(data: dict[str, Any]) -> BlackjackGame:
    """Restore a game from its snapshot."""
    if data.get("version") != SNAPSHOT_VERSION:
        raise ValueError(f"Unsupported snapshot version: {data.get('version')}")

    has_split = data["has_split"]
    return BlackjackGame(
        game_id=data["game_id"],
        user_id=data["user_id"],
        deck=Deck(cards=[deserialize_card(c) for c in data["deck"]]),
        dealer_hand=deserialize_hand(data["dealer_hand"]),
        main_hand=deserialize_hand(data["main_hand"], bet=data["main_bet"], is_split_hand=has_split),
        split_hand=deserialize_hand(data["split_hand"], bet=data["split_bet"], is_split_hand=True),
        phase=GamePhase(data["phase"]),
        active_hand=ActiveHand(data["active_hand"]),
        has_split=has_split,
        payout=data["payout"],
        created_at=datetime.fromisoformat(data["created_at"]),
        expires_at=datetime.fromisoformat(data["expires_at"]),
    )


def dumps_game(game: BlackjackGame) -> str:
    """Encode a game as canonical JSON; the same state always yields the same text."""
    return json.dumps(serialize_game(game), sort_keys=True, separators=(",", ":"))


def loads_game(raw: str | bytes) -> BlackjackGame:
    """Decode a game stored by ``dumps_game``."""
    return deserialize_game(json.loads(raw))


class FinishedStatus(Enum):
    """How a game left the store."""

    COMPLETED = "completed"
    TIMEOUT = "timeout"


def finished_record(
    game: BlackjackGame,
    status: FinishedStatus,
    *,
    balance_after: int | None,
    refund: int = 0,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    History entry for a finished game.

    Cards are recorded face up, hole card included; the record never
    reaches another player.
    """
    finished_at = now or datetime.now(timezone.utc)
    timed_out = status is FinishedStatus.TIMEOUT
    split = game.split_hand if game.has_split else None
    return {
        "game_id": game.game_id,
        "user_id": game.user_id,
        "status": status.value,
        "result": "timeout" if timed_out else game.main_hand.result.value,
        "split_result": None if split is None or timed_out else split.result.value,
        "total_bet": game.total_bet,
        "payout": 0 if timed_out else game.payout,
        "refund": refund,
        "balance_after": balance_after,
        "player_cards": [str(c) for c in game.main_hand.cards],
        "split_cards": [str(c) for c in split.cards] if split is not None else None,
        "dealer_cards": [str(c) for c in game.dealer_hand.cards],
        "player_score": game.main_hand.value,
        "split_score": split.value if split is not None else None,
        "dealer_score": game.dealer_hand.value,
        "is_double_down": any(hand.is_doubled for hand in game.hands),
        "is_split": game.has_split,
        "duration": int((finished_at - game.created_at).total_seconds()),
        "finished_at": finished_at.isoformat(),
    }
