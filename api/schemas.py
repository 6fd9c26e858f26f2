"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests
class StartRequest(ApiModel):
    """Request to start a game."""

    bet: int = Field(..., ge=1, description="Bet amount in points")


class ActionRequest(ApiModel):
    """Request for a player action on an existing game."""

    game_id: str = Field(..., min_length=1)


# Responses
class CardResponse(ApiModel):
    """Card representation. Hidden cards carry no rank or suit."""

    suit: str | None = None
    rank: str | None = None
    hidden: bool = False


class DealerHandResponse(ApiModel):
    """Dealer hand; the value only counts face-up cards."""

    cards: list[CardResponse]
    value: int
    display_value: str


class HandResponse(DealerHandResponse):
    """Player hand representation."""

    bet: int
    is_soft: bool
    is_blackjack: bool
    is_busted: bool
    is_doubled: bool
    result: Literal["win", "lose", "push", "blackjack", "pending"]


class GameStateResponse(ApiModel):
    """Client-safe projection of a game."""

    game_id: str
    phase: Literal["playing", "playing_split", "dealer_turn", "settled"]
    status: Literal["playing", "game_over"]
    active_hand: Literal["main", "split"]
    has_split: bool
    player_hand: HandResponse
    split_hand: HandResponse | None
    dealer_hand: DealerHandResponse
    main_bet: int
    split_bet: int
    can_hit: bool
    can_stand: bool
    can_double: bool
    can_split: bool
    game_over: bool
    result: str | None
    split_result: str | None
    payout: int | None
    balance: int
    expires_at: datetime


class ActiveGameResponse(ApiModel):
    """Current game lookup. ``refunded`` reports an abandoned game just refunded."""

    active: bool
    game: GameStateResponse | None = None
    refunded: int = 0


class SettingsResponse(ApiModel):
    """Public table settings."""

    enabled: bool
    min_bet: int
    max_bet: int


class CleanupResponse(ApiModel):
    """Expired-game sweep result."""

    expired: int


class ErrorResponse(ApiModel):
    """Structured failure."""

    error: str
    detail: str


class FinishedGameResponse(ApiModel):
    """A game from the user's history."""

    game_id: str
    status: Literal["completed", "timeout"]
    result: str
    split_result: str | None
    total_bet: int
    payout: int
    refund: int
    balance_after: int | None
    player_cards: list[str]
    split_cards: list[str] | None
    dealer_cards: list[str]
    player_score: int
    split_score: int | None
    dealer_score: int
    is_double_down: bool
    is_split: bool
    duration: int
    finished_at: datetime


class HistoryResponse(ApiModel):
    """Finished games, most recent first."""

    games: list[FinishedGameResponse]
