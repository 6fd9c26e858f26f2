"""Game store with Redis backend and in-memory fallback."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import redis.asyncio as redis
from redis.exceptions import LockError

from api.ledger import BalanceLedger, LedgerReason
from api.snapshot import FinishedStatus, dumps_game, finished_record, loads_game
from core.errors import DuplicateActiveGameError, GameBusyError, GameExpiredError
from core.game import BlackjackGame

logger = logging.getLogger(__name__)


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class GameStore(ABC):
    """
    Abstract store holding at most one unsettled game per user.

    Games are stored as snapshots, never as live objects, so every load
    returns an independent copy. Expired games are refunded through the
    ledger and removed the first time they are loaded. Finished games,
    settled or timed out, leave the store for the user's history.
    """

    def __init__(
        self,
        ledger: BalanceLedger,
        lock_timeout: int = 30,
        lock_wait: float = 2.0,
        history_size: int = 50,
    ) -> None:
        """
        Initialize the store.

        Args:
            ledger: Ledger used to refund expired games
            lock_timeout: Seconds after which a held lock is released anyway
            lock_wait: Seconds a request waits for a lock before giving up
            history_size: Finished games kept per user
        """
        self._ledger = ledger
        self._lock_timeout = lock_timeout
        self._lock_wait = lock_wait
        self._history_size = history_size

    @abstractmethod
    async def create(self, game: BlackjackGame) -> str:
        """
        Store a new game unless its user already has one.

        Raises:
            DuplicateActiveGameError: the user has an active game
        """
        ...

    @abstractmethod
    async def update(self, game: BlackjackGame) -> None:
        """Overwrite a stored game."""
        ...

    @abstractmethod
    async def delete(self, game: BlackjackGame) -> None:
        """Remove a game and its user index entry."""
        ...

    @abstractmethod
    def lock(self, user_id: str) -> AbstractAsyncContextManager[None]:
        """
        Exclusive per-user lock around load-mutate-save.

        Raises:
            GameBusyError: the lock could not be acquired within ``lock_wait``
        """
        ...

    @abstractmethod
    async def _read(self, game_id: str) -> BlackjackGame | None:
        ...

    @abstractmethod
    async def _active_game_id(self, user_id: str) -> str | None:
        ...

    @abstractmethod
    async def _expired_game_ids(self, now: datetime) -> list[str]:
        ...

    @abstractmethod
    async def _archive(self, game: BlackjackGame, entry: str) -> None:
        """Delete the game and push ``entry`` onto its user's history, atomically."""
        ...

    @abstractmethod
    async def _history(self, user_id: str, limit: int) -> list[str]:
        ...

    async def record_finished(
        self,
        game: BlackjackGame,
        status: FinishedStatus,
        *,
        balance_after: int | None,
        refund: int = 0,
        now: datetime | None = None,
    ) -> None:
        """Move a finished game from the store into its user's history."""
        entry = finished_record(
            game, status, balance_after=balance_after, refund=refund, now=now
        )
        await self._archive(game, json.dumps(entry, sort_keys=True))

    async def history(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """The user's finished games, most recent first."""
        return [json.loads(raw) for raw in await self._history(user_id, limit)]

    async def load(self, game_id: str, now: datetime | None = None) -> BlackjackGame | None:
        """
        Load a game by id.

        Raises:
            GameExpiredError: the game was abandoned; its bets are now refunded
        """
        game = await self._read(game_id)
        if game is not None and game.is_expired(now):
            refunded = await self.expire(game, now)
            raise GameExpiredError(game.game_id, refunded)
        return game

    async def owner_of(self, game_id: str) -> str | None:
        """User id of a stored game, without expiring it."""
        game = await self._read(game_id)
        return game.user_id if game is not None else None

    async def load_active_for_user(
        self, user_id: str, now: datetime | None = None
    ) -> BlackjackGame | None:
        """Load the user's current game, if any."""
        game_id = await self._active_game_id(user_id)
        if game_id is None:
            return None
        return await self.load(game_id, now)

    async def expire(self, game: BlackjackGame, now: datetime | None = None) -> int:
        """Refund every bet locked into an abandoned game, then archive it."""
        refund = game.total_bet
        if refund > 0:
            balance = await self._ledger.credit(
                game.user_id,
                refund,
                reason=LedgerReason.REFUND,
                game_id=game.game_id,
            )
        else:
            balance = await self._ledger.get_balance(game.user_id)
        await self.record_finished(
            game, FinishedStatus.TIMEOUT, balance_after=balance, refund=refund, now=now
        )
        logger.info(
            "Expired game %s for user %s, refunded %d",
            game.game_id,
            game.user_id,
            refund,
        )
        return refund

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """
        Expire every abandoned game.

        Returns:
            Number of games expired
        """
        now = now or datetime.now(timezone.utc)
        expired = 0
        for game_id in await self._expired_game_ids(now):
            game = await self._read(game_id)
            if game is None:
                continue
            try:
                async with self.lock(game.user_id):
                    await self.load(game_id, now)
            except GameExpiredError:
                expired += 1
            except GameBusyError:
                logger.info("Skipping game %s during sweep, user is acting", game_id)
        return expired


class InMemoryGameStore(GameStore):
    """In-memory game store for local development and tests."""

    def __init__(
        self,
        ledger: BalanceLedger,
        lock_timeout: int = 30,
        lock_wait: float = 2.0,
        history_size: int = 50,
    ) -> None:
        super().__init__(ledger, lock_timeout, lock_wait, history_size)
        self._games: dict[str, str] = {}
        self._user_games: dict[str, str] = {}
        self._finished: dict[str, list[str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per lock; the lock is dropped at zero
        self._lock_users: dict[str, int] = {}

    async def create(self, game: BlackjackGame) -> str:
        # No await between check and set, so this is atomic on the event loop
        if game.user_id in self._user_games:
            raise DuplicateActiveGameError(game.user_id)
        self._user_games[game.user_id] = game.game_id
        self._games[game.game_id] = dumps_game(game)
        return game.game_id

    async def update(self, game: BlackjackGame) -> None:
        self._games[game.game_id] = dumps_game(game)

    async def delete(self, game: BlackjackGame) -> None:
        self._games.pop(game.game_id, None)
        if self._user_games.get(game.user_id) == game.game_id:
            del self._user_games[game.user_id]

    def raw(self, game_id: str) -> str | None:
        """Return the stored snapshot text."""
        return self._games.get(game_id)

    @asynccontextmanager
    async def lock(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._lock_wait)
            except asyncio.TimeoutError:
                raise GameBusyError() from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    async def _read(self, game_id: str) -> BlackjackGame | None:
        raw = self._games.get(game_id)
        return loads_game(raw) if raw is not None else None

    async def _archive(self, game: BlackjackGame, entry: str) -> None:
        await self.delete(game)
        finished = self._finished.setdefault(game.user_id, [])
        finished.insert(0, entry)
        del finished[self._history_size:]

    async def _history(self, user_id: str, limit: int) -> list[str]:
        return self._finished.get(user_id, [])[:limit]

    async def _active_game_id(self, user_id: str) -> str | None:
        return self._user_games.get(user_id)

    async def _expired_game_ids(self, now: datetime) -> list[str]:
        return [
            game_id
            for game_id, raw in list(self._games.items())
            if loads_game(raw).is_expired(now)
        ]


class RedisGameStore(GameStore):
    """
    Redis-backed game store.

    Keys:
        {prefix}game:{game_id}  snapshot JSON
        {prefix}user:{user_id}  id of the user's active game (SET NX)
        {prefix}expiry          sorted set of unsettled game ids scored by expiry time
        {prefix}lock:{user_id}  per-user lock
        {prefix}history:{user_id}  finished game records, newest first
    """

    def __init__(
        self,
        redis_client: "redis.Redis",
        ledger: BalanceLedger,
        prefix: str = "blackjack:",
        lock_timeout: int = 30,
        lock_wait: float = 2.0,
        history_size: int = 50,
    ) -> None:
        super().__init__(ledger, lock_timeout, lock_wait, history_size)
        self._redis = redis_client
        self._prefix = prefix

    def _game_key(self, game_id: str) -> str:
        return f"{self._prefix}game:{game_id}"

    def _user_key(self, user_id: str) -> str:
        return f"{self._prefix}user:{user_id}"

    def _lock_key(self, user_id: str) -> str:
        return f"{self._prefix}lock:{user_id}"

    def _history_key(self, user_id: str) -> str:
        return f"{self._prefix}history:{user_id}"

    @property
    def _expiry_key(self) -> str:
        return f"{self._prefix}expiry"

    async def create(self, game: BlackjackGame) -> str:
        claimed = await self._redis.set(self._user_key(game.user_id), game.game_id, nx=True)
        if not claimed:
            raise DuplicateActiveGameError(game.user_id)
        try:
            await self._write(game)
        except Exception:
            await self._redis.delete(self._user_key(game.user_id))
            raise
        return game.game_id

    async def update(self, game: BlackjackGame) -> None:
        await self._write(game)

    async def _write(self, game: BlackjackGame) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._game_key(game.game_id), dumps_game(game))
            if game.game_over:
                # Settled games wait for a payout retry and never expire
                pipe.zrem(self._expiry_key, game.game_id)
            else:
                pipe.zadd(self._expiry_key, {game.game_id: game.expires_at.timestamp()})
            await pipe.execute()

    def _queue_delete(self, pipe: "redis.client.Pipeline", game: BlackjackGame) -> None:
        pipe.delete(self._game_key(game.game_id))
        pipe.delete(self._user_key(game.user_id))
        pipe.zrem(self._expiry_key, game.game_id)

    async def delete(self, game: BlackjackGame) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            self._queue_delete(pipe, game)
            await pipe.execute()

    async def _archive(self, game: BlackjackGame, entry: str) -> None:
        history_key = self._history_key(game.user_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            self._queue_delete(pipe, game)
            pipe.lpush(history_key, entry)
            pipe.ltrim(history_key, 0, self._history_size - 1)
            await pipe.execute()

    async def _history(self, user_id: str, limit: int) -> list[str]:
        entries = await self._redis.lrange(self._history_key(user_id), 0, limit - 1)
        return [_decode(entry) for entry in entries]

    @asynccontextmanager
    async def lock(self, user_id: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            self._lock_key(user_id),
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_wait,
        )
        if not await lock.acquire():
            raise GameBusyError()
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("Lock for user %s timed out before release", user_id)

    async def _read(self, game_id: str) -> BlackjackGame | None:
        raw = await self._redis.get(self._game_key(game_id))
        return loads_game(raw) if raw is not None else None

    async def _active_game_id(self, user_id: str) -> str | None:
        game_id = await self._redis.get(self._user_key(user_id))
        if game_id is None:
            return None
        game_id = _decode(game_id)
        if not await self._redis.exists(self._game_key(game_id)):
            # Index left behind by a failed write
            await self._redis.delete(self._user_key(user_id))
            return None
        return game_id

    async def _expired_game_ids(self, now: datetime) -> list[str]:
        members = await self._redis.zrangebyscore(self._expiry_key, "-inf", now.timestamp())
        return [_decode(member) for member in members]
