"""Pytest fixtures for blackjack tests."""

import os

# Set before any api module reads the configuration
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CLEANUP_API_KEY", "test-cleanup-key")

from datetime import datetime, timedelta, timezone
from random import Random

import pytest

from core.cards import Card, Deck, new_deck
from core.game import BlackjackGame
from core.hand import Hand

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def stack_deck(*cards: str) -> Deck:
    """
    A full 52-card deck whose first draws are ``cards``, in order.

    The initial deal goes player, dealer up, player, dealer hole.
    """
    top = [Card.from_string(c) for c in cards]
    rest = new_deck()
    for card in top:
        rest.remove(card)
    return Deck(cards=rest + top[::-1])


def deal(*cards: str, bet: int = 100, user_id: str = "alice", now: datetime = START) -> BlackjackGame:
    """Deal a game from a stacked deck."""
    return BlackjackGame.deal(user_id, bet, deck=stack_deck(*cards), now=now)


def hand_of(*cards: str, bet: int = 0) -> Hand:
    return Hand(cards=[Card.from_string(c) for c in cards], bet=bet)


class FakeClock:
    """Controllable clock for expiry tests."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return Random(42)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stacked():
    """Factory for stacked decks."""
    return stack_deck


@pytest.fixture
def dealt():
    """Factory for games dealt from stacked decks."""
    return deal


@pytest.fixture
def make_hand():
    return hand_of
