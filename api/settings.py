"""Game settings providers (enabled flag and bet limits)."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import redis.asyncio as redis

from config import config


@dataclass(frozen=True)
class GameSettings:
    """Admin-controlled table settings."""

    enabled: bool = True
    min_bet: int = 10
    max_bet: int = 500
    # Set by an operator who wants to close the table; blocks new games only
    pending_disable: bool = False

    @property
    def accepting_games(self) -> bool:
        return self.enabled and not self.pending_disable

    @classmethod
    def from_config(cls) -> "GameSettings":
        return cls(
            enabled=config.game.enabled,
            min_bet=config.game.min_bet,
            max_bet=config.game.max_bet,
        )


class SettingsProvider(ABC):
    """Abstract settings source."""

    @abstractmethod
    async def load(self) -> GameSettings:
        ...

    @abstractmethod
    async def save(self, settings: GameSettings) -> None:
        ...


class StaticSettingsProvider(SettingsProvider):
    """Settings held in process, seeded from configuration."""

    def __init__(self, settings: GameSettings | None = None) -> None:
        self._settings = settings or GameSettings.from_config()

    async def load(self) -> GameSettings:
        return self._settings

    async def save(self, settings: GameSettings) -> None:
        self._settings = settings


class RedisSettingsProvider(SettingsProvider):
    """
    Settings stored in a Redis hash, cached in process.

    The cache lives for ``cache_ttl`` seconds, or 5 seconds while a disable
    is pending so the table closes promptly.
    """

    PENDING_DISABLE_TTL = 5.0

    def __init__(
        self,
        redis_client: "redis.Redis",
        prefix: str = "blackjack:",
        cache_ttl: float = 30.0,
        defaults: GameSettings | None = None,
    ) -> None:
        self._redis = redis_client
        self._key = f"{prefix}settings"
        self._cache_ttl = cache_ttl
        self._defaults = defaults or GameSettings.from_config()
        self._cached: GameSettings | None = None
        self._cached_at = 0.0

    def _cache_valid(self) -> bool:
        if self._cached is None:
            return False
        ttl = self.PENDING_DISABLE_TTL if self._cached.pending_disable else self._cache_ttl
        return time.monotonic() - self._cached_at < ttl

    async def load(self) -> GameSettings:
        if self._cache_valid():
            return self._cached  # type: ignore[return-value]

        raw = await self._redis.hgetall(self._key)
        values = {
            (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
            for k, v in raw.items()
        }
        settings = GameSettings(
            enabled=values.get("enabled", str(self._defaults.enabled).lower()) == "true",
            min_bet=int(values.get("min_bet", self._defaults.min_bet)),
            max_bet=int(values.get("max_bet", self._defaults.max_bet)),
            pending_disable=values.get("pending_disable", "false") == "true",
        )
        self._cached = settings
        self._cached_at = time.monotonic()
        return settings

    async def save(self, settings: GameSettings) -> None:
        await self._redis.hset(
            self._key,
            mapping={
                "enabled": str(settings.enabled).lower(),
                "min_bet": str(settings.min_bet),
                "max_bet": str(settings.max_bet),
                "pending_disable": str(settings.pending_disable).lower(),
            },
        )
        self.clear_cache()

    def clear_cache(self) -> None:
        """Drop the cached settings; the next load reads Redis."""
        self._cached = None
        self._cached_at = 0.0
