"""Typed failures raised by the engine, the store and the ledger.

Every business-rule violation is a ``BlackjackError`` subclass carrying a
stable ``code`` and the HTTP status the API layer answers with. None of them
are raised after a mutation has been applied.
"""

from typing import Any


class BlackjackError(Exception):
    """Base class for all blackjack failures."""

    code = "blackjack_error"
    status_code = 400

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Structured representation returned to API clients."""
        return {"error": self.code, "detail": self.message, **self.details}


class ValidationError(BlackjackError):
    """Bad input, e.g. a bet outside the configured range."""

    code = "validation_error"


class InsufficientFundsError(BlackjackError):
    """The user's balance cannot cover the requested stake."""

    code = "insufficient_funds"

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"Insufficient balance: {required} required, {available} available",
            required=required,
            available=available,
        )


class IllegalActionError(BlackjackError):
    """The action is not legal for the game's phase or active hand."""

    code = "illegal_action"


class GameDisabledError(BlackjackError):
    code = "game_disabled"
    status_code = 403

    def __init__(self) -> None:
        super().__init__("Blackjack is currently disabled")


class ForbiddenError(BlackjackError):
    """The game does not belong to the requesting user."""

    code = "forbidden"
    status_code = 403

    def __init__(self) -> None:
        super().__init__("This game does not belong to you")


class GameNotFoundError(BlackjackError):
    code = "game_not_found"
    status_code = 404

    def __init__(self, game_id: str) -> None:
        super().__init__(f"No active game {game_id}", game_id=game_id)


class GameAlreadyActiveError(BlackjackError):
    """A start was attempted while a game is in progress.

    ``game`` holds the public projection of the existing game so the client
    can resume it.
    """

    code = "game_already_active"
    status_code = 409

    def __init__(self, game: dict[str, Any]) -> None:
        super().__init__("You already have an active game", game=game)


class DuplicateActiveGameError(BlackjackError):
    """The store refused to create a second active game for a user."""

    code = "game_already_active"
    status_code = 409

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} already has an active game")
        self.user_id = user_id


class GameBusyError(BlackjackError):
    """Another request holds the game's lock. Safe to retry."""

    code = "busy"
    status_code = 409

    def __init__(self) -> None:
        super().__init__("Another action is in progress, please retry")


class GameExpiredError(BlackjackError):
    """The game was abandoned past its TTL and its bets were refunded."""

    code = "game_expired"
    status_code = 410

    def __init__(self, game_id: str, refunded: int) -> None:
        super().__init__(
            "The game expired and its bets were refunded",
            game_id=game_id,
            refunded=refunded,
        )
        self.game_id = game_id
        self.refunded = refunded


class DeckExhaustedError(BlackjackError):
    """Drawing from an empty deck. Unreachable with a 52-card deck."""

    code = "internal_error"
    status_code = 500

    def __init__(self) -> None:
        super().__init__("Cannot draw from an empty deck")
