"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi.errors import RateLimitExceeded

from api.limits import DEFAULT_LIMIT, limiter, rate_limit_exceeded_handler
from api.routes import game
from config import config
from core.errors import BlackjackError, DeckExhaustedError

logging.basicConfig(level=config.logging.level, format=config.logging.format)
logger = logging.getLogger(__name__)


def _blackjack_error_handler(request: Request, exc: BlackjackError) -> JSONResponse:
    """Answer business-rule failures with their code and status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _deck_exhausted_handler(request: Request, exc: DeckExhaustedError) -> JSONResponse:
    logger.critical("Deck exhausted while handling %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": exc.code, "detail": "Internal error"},
    )


def _redis_error_handler(request: Request, exc: RedisError) -> JSONResponse:
    logger.error("Storage unavailable during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "storage_unavailable", "detail": "Please retry shortly"},
    )


app = FastAPI(
    title="Points Blackjack",
    description="Single-player blackjack against the house with a points balance",
    version="0.1.0",
)

# Add rate limiter to app state and exception handlers
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(DeckExhaustedError, _deck_exhausted_handler)
app.add_exception_handler(BlackjackError, _blackjack_error_handler)
app.add_exception_handler(RedisError, _redis_error_handler)

# CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors.allowed_origins,
    allow_credentials=config.cors.allow_credentials,
    allow_methods=config.cors.allow_methods,
    allow_headers=config.cors.allow_headers,
)


@app.get("/api/health")
@limiter.limit(DEFAULT_LIMIT)
async def health_check(request: Request) -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(game.router, prefix="/api/blackjack", tags=["blackjack"])
