"""Configuration management with environment variable support."""

import os
import secrets
from dataclasses import dataclass, field


def _parse_cors_origins() -> list[str]:
    """Parse CORS_ORIGINS environment variable."""
    origins = os.getenv("CORS_ORIGINS", "http://localhost:8000")
    return [o.strip() for o in origins.split(",") if o.strip()]


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class CORSConfig:
    """CORS configuration."""

    allowed_origins: list[str] = field(default_factory=_parse_cors_origins)
    allow_credentials: bool = True
    allow_methods: list[str] = field(default_factory=lambda: ["*"])
    allow_headers: list[str] = field(default_factory=lambda: ["*"])


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting configuration."""

    enabled: bool = field(default_factory=lambda: _env_flag("RATE_LIMIT_ENABLED", "true"))
    requests_per_minute: int = field(
        default_factory=lambda: int(os.getenv("RATE_LIMIT_RPM", "60"))
    )
    # Seconds between two identical actions by the same user
    action_cooldown: int = field(
        default_factory=lambda: int(os.getenv("RATE_LIMIT_ACTION_COOLDOWN", "1"))
    )


@dataclass(frozen=True)
class SecurityConfig:
    """Security configuration."""

    secret_key: str = field(
        default_factory=lambda: os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
    )
    cleanup_api_key: str = field(
        default_factory=lambda: os.getenv("CLEANUP_API_KEY", secrets.token_urlsafe(32))
    )
    # Lifetime of the signed user tokens issued by the auth service
    user_token_max_age: int = field(
        default_factory=lambda: int(os.getenv("USER_TOKEN_MAX_AGE", "86400"))
    )


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection configuration."""

    enabled: bool = field(default_factory=lambda: _env_flag("REDIS_ENABLED", "true"))
    host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    password: str | None = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))
    key_prefix: str = "blackjack:"

    @property
    def url(self) -> str:
        """Build Redis connection URL."""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


@dataclass(frozen=True)
class GameConfig:
    """Default game configuration."""

    enabled: bool = field(default_factory=lambda: _env_flag("BLACKJACK_ENABLED", "true"))
    min_bet: int = field(default_factory=lambda: int(os.getenv("BLACKJACK_MIN_BET", "10")))
    max_bet: int = field(default_factory=lambda: int(os.getenv("BLACKJACK_MAX_BET", "500")))
    game_ttl: int = field(
        default_factory=lambda: int(os.getenv("BLACKJACK_GAME_TTL", "600"))
    )  # Abandoned game window in seconds, renewed on every action
    lock_timeout: int = field(
        default_factory=lambda: int(os.getenv("BLACKJACK_LOCK_TIMEOUT", "30"))
    )
    lock_wait: float = field(
        default_factory=lambda: float(os.getenv("BLACKJACK_LOCK_WAIT", "2.0"))
    )
    starting_balance: int = field(
        default_factory=lambda: int(os.getenv("BLACKJACK_STARTING_BALANCE", "1000"))
    )  # Only used by the in-memory ledger
    history_size: int = field(
        default_factory=lambda: int(os.getenv("BLACKJACK_HISTORY_SIZE", "50"))
    )  # Finished games kept per user
    settings_cache_ttl: float = 30.0


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class AppConfig:
    """Application configuration."""

    debug: bool = field(default_factory=lambda: _env_flag("DEBUG", "false"))
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))

    redis: RedisConfig = field(default_factory=RedisConfig)
    game: GameConfig = field(default_factory=GameConfig)
    cors: CORSConfig = field(default_factory=CORSConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Global configuration instance
config = AppConfig()
