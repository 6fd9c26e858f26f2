"""Game orchestration: store, engine and ledger under a per-user lock."""

import logging
from datetime import datetime, timedelta, timezone
from random import Random
from typing import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from api.ledger import BalanceLedger, InMemoryLedger, LedgerReason, RedisLedger
from api.schemas import (
    ActiveGameResponse,
    CardResponse,
    DealerHandResponse,
    FinishedGameResponse,
    GameStateResponse,
    HandResponse,
    HistoryResponse,
)
from api.settings import (
    GameSettings,
    RedisSettingsProvider,
    SettingsProvider,
    StaticSettingsProvider,
)
from api.snapshot import FinishedStatus
from api.store import GameStore, InMemoryGameStore, RedisGameStore
from config import config
from core.cards import Card, Deck
from core.errors import (
    DeckExhaustedError,
    ForbiddenError,
    GameAlreadyActiveError,
    GameDisabledError,
    GameExpiredError,
    GameNotFoundError,
    IllegalActionError,
    InsufficientFundsError,
    ValidationError,
)
from core.game import Action, BlackjackGame, EventType, GameEvent
from core.hand import Hand

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

STAKE_REASONS = {
    Action.DOUBLE: LedgerReason.DOUBLE,
    Action.SPLIT: LedgerReason.SPLIT,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _card_response(card: Card) -> CardResponse:
    """Hidden cards leave the server without rank or suit."""
    if card.hidden:
        return CardResponse(hidden=True)
    return CardResponse(suit=card.suit.value, rank=card.rank.value)


def _dealer_hand_response(hand: Hand) -> DealerHandResponse:
    value = hand.visible_value
    return DealerHandResponse(
        cards=[_card_response(c) for c in hand.cards],
        value=value.total,
        display_value=value.display,
    )


def _hand_response(hand: Hand) -> HandResponse:
    value = hand.visible_value
    return HandResponse(
        cards=[_card_response(c) for c in hand.cards],
        value=value.total,
        display_value=value.display,
        bet=hand.bet,
        is_soft=hand.is_soft,
        is_blackjack=hand.is_blackjack,
        is_busted=hand.is_busted,
        is_doubled=hand.is_doubled,
        result=hand.result.value,
    )


def project_game(game: BlackjackGame, balance: int) -> GameStateResponse:
    """
    Build the client-safe view of a game.

    The action flags are derived here on every response from the game and
    the current balance; nothing the client sends is trusted for them.
    """
    over = game.game_over
    return GameStateResponse(
        game_id=game.game_id,
        phase=game.phase.value,
        status="game_over" if over else "playing",
        active_hand=game.active_hand.value,
        has_split=game.has_split,
        player_hand=_hand_response(game.main_hand),
        split_hand=_hand_response(game.split_hand) if game.has_split else None,
        dealer_hand=_dealer_hand_response(game.dealer_hand),
        main_bet=game.main_bet,
        split_bet=game.split_bet,
        can_hit=game.can_hit,
        can_stand=game.can_stand,
        can_double=game.can_double(balance),
        can_split=game.can_split(balance),
        game_over=over,
        result=game.main_hand.result.value if over else None,
        split_result=game.split_hand.result.value if over and game.has_split else None,
        payout=game.payout if over else None,
        balance=balance,
        expires_at=game.expires_at,
    )


def _log_event(event: GameEvent) -> None:
    level = logging.DEBUG if event.event_type is EventType.CARD_DEALT else logging.INFO
    logger.log(level, "%s %s", event.event_type.name, event.data)


class GameService:
    """
    Request orchestrator.

    Every operation runs inside the user's store lock: load, validate,
    debit any new stake, mutate, save. Stakes are debited before the game
    changes and credited back if the change cannot be saved; payouts are
    credited after settlement and the game is only archived once they are.
    """

    def __init__(
        self,
        store: GameStore,
        ledger: BalanceLedger,
        settings: SettingsProvider,
        *,
        ttl: timedelta | None = None,
        rng: Random | None = None,
        clock: Clock | None = None,
        deck_factory: Callable[[], Deck] | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            store: Game store
            ledger: Points ledger
            settings: Table settings source
            ttl: Abandonment window, renewed on every action
            rng: Random number generator for shuffling (CSPRNG when omitted)
            clock: Current-time source
            deck_factory: Builds the deck for each new game (a fresh
                shuffled deck when omitted)
        """
        self._store = store
        self._ledger = ledger
        self._settings = settings
        self._ttl = ttl or timedelta(seconds=config.game.game_ttl)
        self._rng = rng
        self._clock = clock or _utcnow
        self._deck_factory = deck_factory

    @property
    def store(self) -> GameStore:
        return self._store

    @property
    def ledger(self) -> BalanceLedger:
        return self._ledger

    async def get_settings(self) -> GameSettings:
        return await self._settings.load()

    async def get_active(self, user_id: str) -> ActiveGameResponse:
        """Return the user's game in progress, if any."""
        async with self._store.lock(user_id):
            game, refunded = await self._load_active(user_id)
            balance = await self._ledger.get_balance(user_id)

        if game is None:
            return ActiveGameResponse(active=False, refunded=refunded)
        return ActiveGameResponse(active=True, game=project_game(game, balance))

    async def start(self, user_id: str, bet: int) -> GameStateResponse:
        """
        Debit the bet and deal a new game.

        Raises:
            GameDisabledError: the table is closed
            ValidationError: bet outside the table limits
            GameAlreadyActiveError: the user must finish or resume their game
            InsufficientFundsError: balance below the bet
        """
        settings = await self._settings.load()
        if not settings.accepting_games:
            raise GameDisabledError()
        if not settings.min_bet <= bet <= settings.max_bet:
            raise ValidationError(
                f"Bet must be between {settings.min_bet} and {settings.max_bet}",
                min_bet=settings.min_bet,
                max_bet=settings.max_bet,
            )

        async with self._store.lock(user_id):
            existing, _ = await self._load_active(user_id)
            balance = await self._ledger.get_balance(user_id)
            if existing is not None:
                projection = project_game(existing, balance)
                raise GameAlreadyActiveError(projection.model_dump(by_alias=True, mode="json"))
            if bet > balance:
                raise InsufficientFundsError(required=bet, available=balance)

            game = BlackjackGame.deal(
                user_id,
                bet,
                deck=self._deck_factory() if self._deck_factory else None,
                rng=self._rng,
                now=self._clock(),
                ttl=self._ttl,
                handler=_log_event,
            )
            balance = await self._ledger.debit(
                user_id, bet, reason=LedgerReason.BET, game_id=game.game_id
            )

            if game.game_over:
                balance = await self._settle(game, persisted=False)
            else:
                try:
                    await self._store.create(game)
                except Exception:
                    await self._rollback(user_id, bet, game.game_id)
                    raise

        return project_game(game, balance)

    async def act(self, user_id: str, game_id: str, action: Action) -> GameStateResponse:
        """
        Apply a player action to the user's game.

        Raises:
            GameNotFoundError: no such game
            ForbiddenError: the game belongs to another user
            GameExpiredError: the game was abandoned and has been refunded
            IllegalActionError: the action is not legal right now
            InsufficientFundsError: balance cannot cover a double or split
        """
        async with self._store.lock(user_id):
            owner = await self._store.owner_of(game_id)
            if owner is None:
                raise GameNotFoundError(game_id)
            if owner != user_id:
                logger.warning(
                    "User %s attempted %s on game %s owned by %s",
                    user_id,
                    action.value,
                    game_id,
                    owner,
                )
                raise ForbiddenError()

            now = self._clock()
            game = await self._store.load(game_id, now)
            if game is None:
                raise GameNotFoundError(game_id)
            if game.game_over:
                await self._settle(game, persisted=True)
                raise IllegalActionError("The game is already settled")

            game.subscribe(_log_event)
            balance = await self._ledger.get_balance(user_id)
            stake = game.check_action(action, balance)
            if stake:
                balance = await self._ledger.debit(
                    user_id, stake, reason=STAKE_REASONS[action], game_id=game_id
                )

            try:
                game.apply(action)
                game.touch(now, self._ttl)
                if not game.game_over:
                    await self._store.update(game)
            except DeckExhaustedError:
                logger.critical("Deck exhausted in game %s, state not saved", game_id)
                if stake:
                    await self._rollback(user_id, stake, game_id)
                raise
            except Exception:
                if stake:
                    await self._rollback(user_id, stake, game_id)
                raise

            if game.game_over:
                balance = await self._settle(game, persisted=True)

        return project_game(game, balance)

    async def hit(self, user_id: str, game_id: str) -> GameStateResponse:
        return await self.act(user_id, game_id, Action.HIT)

    async def stand(self, user_id: str, game_id: str) -> GameStateResponse:
        return await self.act(user_id, game_id, Action.STAND)

    async def double(self, user_id: str, game_id: str) -> GameStateResponse:
        return await self.act(user_id, game_id, Action.DOUBLE)

    async def split(self, user_id: str, game_id: str) -> GameStateResponse:
        return await self.act(user_id, game_id, Action.SPLIT)

    async def sweep_expired(self) -> int:
        """Refund and remove every abandoned game."""
        return await self._store.sweep_expired(self._clock())

    async def get_history(self, user_id: str, limit: int = 20) -> HistoryResponse:
        """The user's finished games, most recent first."""
        entries = await self._store.history(user_id, limit)
        return HistoryResponse(
            games=[FinishedGameResponse.model_validate(entry) for entry in entries]
        )

    async def _load_active(self, user_id: str) -> tuple[BlackjackGame | None, int]:
        """
        Load the user's unsettled game.

        Returns:
            The game (None when there is none) and any refund made because
            it had expired. A settled game still owed its payout is settled
            here and reported as no game.
        """
        try:
            game = await self._store.load_active_for_user(user_id, self._clock())
        except GameExpiredError as exc:
            return None, exc.refunded

        if game is not None and game.game_over:
            await self._settle(game, persisted=True)
            return None, 0
        return game, 0

    async def _settle(self, game: BlackjackGame, persisted: bool) -> int:
        """
        Credit a settled game's payout and move it to the user's history.

        If the credit fails the settled game is kept (or stored) so the
        payout is retried on the user's next request.

        Returns:
            The user's balance afterwards
        """
        try:
            if game.payout > 0:
                balance = await self._ledger.credit(
                    game.user_id,
                    game.payout,
                    reason=LedgerReason.PAYOUT,
                    game_id=game.game_id,
                )
            else:
                balance = await self._ledger.get_balance(game.user_id)
        except Exception:
            logger.exception(
                "Payout of %d for game %s failed, keeping it for retry",
                game.payout,
                game.game_id,
            )
            if persisted:
                await self._store.update(game)
            else:
                await self._store.create(game)
            raise

        await self._store.record_finished(
            game, FinishedStatus.COMPLETED, balance_after=balance, now=self._clock()
        )
        logger.info(
            "Settled game %s for user %s: bet %d, payout %d",
            game.game_id,
            game.user_id,
            game.total_bet,
            game.payout,
        )
        return balance

    async def _rollback(self, user_id: str, amount: int, game_id: str) -> None:
        logger.error("Rolling back %d for user %s on game %s", amount, user_id, game_id)
        await self._ledger.credit(
            user_id, amount, reason=LedgerReason.ROLLBACK, game_id=game_id
        )


# Global service instance
_game_service: GameService | None = None


async def get_game_service() -> GameService:
    """Get or create the game service, on Redis when it is reachable."""
    global _game_service

    if _game_service is not None:
        return _game_service

    game_config = config.game
    prefix = config.redis.key_prefix

    if config.redis.enabled:
        try:
            redis_client = redis.from_url(config.redis.url)
            await redis_client.ping()
        except (RedisError, OSError):
            logger.warning("Redis unavailable at %s, using in-memory backends", config.redis.url)
        else:
            ledger: BalanceLedger = RedisLedger(redis_client, prefix=prefix)
            _game_service = GameService(
                RedisGameStore(
                    redis_client,
                    ledger,
                    prefix=prefix,
                    lock_timeout=game_config.lock_timeout,
                    lock_wait=game_config.lock_wait,
                    history_size=game_config.history_size,
                ),
                ledger,
                RedisSettingsProvider(
                    redis_client,
                    prefix=prefix,
                    cache_ttl=game_config.settings_cache_ttl,
                ),
            )
            return _game_service

    ledger = InMemoryLedger(default_balance=game_config.starting_balance)
    _game_service = GameService(
        InMemoryGameStore(
            ledger,
            lock_timeout=game_config.lock_timeout,
            lock_wait=game_config.lock_wait,
            history_size=game_config.history_size,
        ),
        ledger,
        StaticSettingsProvider(),
    )
    return _game_service
