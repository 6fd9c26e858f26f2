"""Shared slowapi rate limiter."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from api.auth import USER_TOKEN_HEADER, get_user_token_signer
from config import config

DEFAULT_LIMIT = f"{config.rate_limit.requests_per_minute}/minute"

# Limits are counted per route, so this allows one of each action per window
ACTION_LIMIT = f"1 per {config.rate_limit.action_cooldown} second"


def user_or_remote_address(request: Request) -> str:
    """Limit verified users by id and everyone else by client address."""
    token = request.headers.get(USER_TOKEN_HEADER)
    user_id = get_user_token_signer().unsign(token) if token else None
    if user_id is None:
        return get_remote_address(request)
    return f"user:{user_id}"


limiter = Limiter(
    key_func=user_or_remote_address,
    enabled=config.rate_limit.enabled,
    default_limits=[DEFAULT_LIMIT],
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={"error": "rate_limited", "detail": f"Rate limit exceeded: {exc.detail}"},
    )
