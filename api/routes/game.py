"""Blackjack game API endpoints."""

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from api.auth import get_current_user
from api.limits import ACTION_LIMIT, DEFAULT_LIMIT, limiter
from api.schemas import (
    ActionRequest,
    ActiveGameResponse,
    CleanupResponse,
    ErrorResponse,
    GameStateResponse,
    HistoryResponse,
    SettingsResponse,
    StartRequest,
)
from api.service import GameService, get_game_service
from config import config
from core.game import Action

logger = logging.getLogger(__name__)

router = APIRouter()

CurrentUser = Annotated[str, Depends(get_current_user)]
Service = Annotated[GameService, Depends(get_game_service)]

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    410: {"model": ErrorResponse},
}


def require_cleanup_key(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Guard for the cleanup job: ``Authorization: Bearer <CLEANUP_API_KEY>``."""
    scheme, _, key = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(
        key.encode(), config.security.cleanup_api_key.encode()
    ):
        logger.warning("Rejected cleanup request with a bad key")
        raise HTTPException(status_code=401, detail="Invalid cleanup key")


@router.get("/game")
@limiter.limit(DEFAULT_LIMIT)
async def get_active_game(
    request: Request, user_id: CurrentUser, service: Service
) -> ActiveGameResponse:
    """Get the requesting user's game in progress."""
    return await service.get_active(user_id)


@router.post("/start", responses=ERROR_RESPONSES)
@limiter.limit(DEFAULT_LIMIT)
@limiter.limit(ACTION_LIMIT)
async def start_game(
    request: Request,
    payload: StartRequest,
    user_id: CurrentUser,
    service: Service,
) -> GameStateResponse:
    """Place a bet and deal a new game."""
    return await service.start(user_id, payload.bet)


async def _act(
    service: GameService, user_id: str, payload: ActionRequest, action: Action
) -> GameStateResponse:
    return await service.act(user_id, payload.game_id, action)


@router.post("/hit", responses=ERROR_RESPONSES)
@limiter.limit(DEFAULT_LIMIT)
@limiter.limit(ACTION_LIMIT)
async def hit(
    request: Request, payload: ActionRequest, user_id: CurrentUser, service: Service
) -> GameStateResponse:
    """Draw a card to the active hand."""
    return await _act(service, user_id, payload, Action.HIT)


@router.post("/stand", responses=ERROR_RESPONSES)
@limiter.limit(DEFAULT_LIMIT)
@limiter.limit(ACTION_LIMIT)
async def stand(
    request: Request, payload: ActionRequest, user_id: CurrentUser, service: Service
) -> GameStateResponse:
    """Finish the active hand."""
    return await _act(service, user_id, payload, Action.STAND)


@router.post("/double", responses=ERROR_RESPONSES)
@limiter.limit(DEFAULT_LIMIT)
@limiter.limit(ACTION_LIMIT)
async def double(
    request: Request, payload: ActionRequest, user_id: CurrentUser, service: Service
) -> GameStateResponse:
    """Double the active hand's bet and draw exactly one card."""
    return await _act(service, user_id, payload, Action.DOUBLE)


@router.post("/split", responses=ERROR_RESPONSES)
@limiter.limit(DEFAULT_LIMIT)
@limiter.limit(ACTION_LIMIT)
async def split(
    request: Request, payload: ActionRequest, user_id: CurrentUser, service: Service
) -> GameStateResponse:
    """Split a pair into two hands."""
    return await _act(service, user_id, payload, Action.SPLIT)


@router.get("/settings")
async def get_settings(service: Service) -> SettingsResponse:
    """Public table settings."""
    settings = await service.get_settings()
    return SettingsResponse(
        enabled=settings.accepting_games,
        min_bet=settings.min_bet,
        max_bet=settings.max_bet,
    )


@router.post("/cleanup", dependencies=[Depends(require_cleanup_key)])
async def cleanup(service: Service) -> CleanupResponse:
    """Refund and remove abandoned games. Called by a scheduled job."""
    expired = await service.sweep_expired()
    if expired:
        logger.info("Cleanup expired %d games", expired)
    return CleanupResponse(expired=expired)


@router.get("/history")
@limiter.limit(DEFAULT_LIMIT)
async def get_history(
    request: Request, user_id: CurrentUser, service: Service
) -> HistoryResponse:
    """The requesting user's finished games, newest first."""
    return await service.get_history(user_id)
