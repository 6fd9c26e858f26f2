"""Balance ledger adapters: atomic debit/credit of a user's points."""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum

import redis.asyncio as redis

from core.errors import InsufficientFundsError, ValidationError


class LedgerReason(Enum):
    """Why a balance moved; recorded on every audit entry."""

    BET = "blackjack_bet"
    DOUBLE = "blackjack_double"
    SPLIT = "blackjack_split"
    PAYOUT = "blackjack_payout"
    REFUND = "blackjack_refund"
    ROLLBACK = "blackjack_rollback"


@dataclass(frozen=True)
class LedgerEntry:
    """Audit record of one balance change. Debits are negative."""

    user_id: str
    amount: int
    reason: str
    game_id: str | None
    balance_after: int | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class BalanceLedger(ABC):
    """Abstract points ledger."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> int:
        """Return the user's current balance."""
        ...

    @abstractmethod
    async def debit(
        self,
        user_id: str,
        amount: int,
        *,
        reason: LedgerReason,
        game_id: str | None = None,
    ) -> int:
        """
        Remove points from a balance.

        Returns:
            The balance after the debit

        Raises:
            InsufficientFundsError: balance lower than ``amount``; nothing changes
        """
        ...

    @abstractmethod
    async def credit(
        self,
        user_id: str,
        amount: int,
        *,
        reason: LedgerReason,
        game_id: str | None = None,
    ) -> int:
        """Add points to a balance and return the new balance."""
        ...

    @staticmethod
    def _check_amount(amount: int) -> None:
        if amount <= 0:
            raise ValidationError(f"Ledger amount must be positive, got {amount}")


class InMemoryLedger(BalanceLedger):
    """In-memory ledger for local development and tests."""

    def __init__(self, default_balance: int = 0, balances: dict[str, int] | None = None) -> None:
        self._default_balance = default_balance
        self._balances: dict[str, int] = dict(balances or {})
        self._entries: list[LedgerEntry] = []
        self._lock = asyncio.Lock()

    @property
    def entries(self) -> list[LedgerEntry]:
        """Return the audit trail."""
        return self._entries.copy()

    def set_balance(self, user_id: str, balance: int) -> None:
        self._balances[user_id] = balance

    async def get_balance(self, user_id: str) -> int:
        return self._balances.get(user_id, self._default_balance)

    async def debit(
        self,
        user_id: str,
        amount: int,
        *,
        reason: LedgerReason,
        game_id: str | None = None,
    ) -> int:
        self._check_amount(amount)
        async with self._lock:
            balance = await self.get_balance(user_id)
            if balance < amount:
                raise InsufficientFundsError(required=amount, available=balance)
            self._balances[user_id] = balance - amount
            self._entries.append(
                LedgerEntry(user_id, -amount, reason.value, game_id, balance - amount)
            )
            return balance - amount

    async def credit(
        self,
        user_id: str,
        amount: int,
        *,
        reason: LedgerReason,
        game_id: str | None = None,
    ) -> int:
        self._check_amount(amount)
        async with self._lock:
            balance = await self.get_balance(user_id) + amount
            self._balances[user_id] = balance
            self._entries.append(LedgerEntry(user_id, amount, reason.value, game_id, balance))
            return balance


# Returns -1 when the balance cannot cover the debit
_DEBIT_SCRIPT = """
local balance = tonumber(redis.call('GET', KEYS[1]) or ARGV[2])
local amount = tonumber(ARGV[1])
if balance < amount then
    return -1
end
local after = balance - amount
redis.call('SET', KEYS[1], after)
redis.call('RPUSH', KEYS[2], ARGV[3])
return after
"""


class RedisLedger(BalanceLedger):
    """Redis-backed ledger. Debits run as a Lua script so check and decrement are atomic."""

    def __init__(
        self,
        redis_client: "redis.Redis",
        prefix: str = "blackjack:",
        default_balance: int = 0,
    ) -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._default_balance = default_balance
        self._debit_script = redis_client.register_script(_DEBIT_SCRIPT)

    def _balance_key(self, user_id: str) -> str:
        return f"{self._prefix}balance:{user_id}"

    def _audit_key(self, user_id: str) -> str:
        return f"{self._prefix}audit:{user_id}"

    async def get_balance(self, user_id: str) -> int:
        value = await self._redis.get(self._balance_key(user_id))
        return int(value) if value is not None else self._default_balance

    async def debit(
        self,
        user_id: str,
        amount: int,
        *,
        reason: LedgerReason,
        game_id: str | None = None,
    ) -> int:
        self._check_amount(amount)
        entry = LedgerEntry(user_id, -amount, reason.value, game_id)
        after = int(
            await self._debit_script(
                keys=[self._balance_key(user_id), self._audit_key(user_id)],
                args=[amount, self._default_balance, json.dumps(asdict(entry))],
            )
        )
        if after < 0:
            raise InsufficientFundsError(
                required=amount, available=await self.get_balance(user_id)
            )
        return after

    async def credit(
        self,
        user_id: str,
        amount: int,
        *,
        reason: LedgerReason,
        game_id: str | None = None,
    ) -> int:
        self._check_amount(amount)
        key = self._balance_key(user_id)
        entry = LedgerEntry(user_id, amount, reason.value, game_id)
        # Seed the default balance for users the ledger has never seen
        await self._redis.set(key, self._default_balance, nx=True)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incrby(key, amount)
            pipe.rpush(self._audit_key(user_id), json.dumps(asdict(entry)))
            balance, _ = await pipe.execute()
        return int(balance)
