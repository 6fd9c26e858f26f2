"""Game engine and state management."""

from core.game.events import GameEvent, EventType
from core.game.state import Action, ActiveHand, GamePhase
from core.game.engine import BlackjackGame

__all__ = [
    "GameEvent",
    "EventType",
    "Action",
    "ActiveHand",
    "GamePhase",
    "BlackjackGame",
]
