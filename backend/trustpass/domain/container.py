"""Lightweight service container shared by the API layer and workers."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import asyncpg

from trustpass.domain.common.pairs import utcnow
from trustpass.domain.connections.service import ConnectionService
from trustpass.domain.identity.service import IdentityService
from trustpass.domain.leaderboard.service import LeaderboardService
from trustpass.domain.memory_store import InMemoryStore
from trustpass.domain.passes.service import PassService
from trustpass.domain.proximity.service import ProximityEvaluator
from trustpass.domain.ratings.service import RatingEngine
from trustpass.domain.store import Store
from trustpass.infra.postgres_store import PostgresStore

_store: Store = InMemoryStore()
_clock: Callable[[], datetime] = utcnow
_identity: IdentityService
_connections: ConnectionService
_proximity: ProximityEvaluator
_passes: PassService
_ratings: RatingEngine
_leaderboard: LeaderboardService


def configure(*, store: Optional[Store] = None, clock: Optional[Callable[[], datetime]] = None) -> None:
    """Rebuild every service on top of ``store`` (kept when omitted)."""
    global _store, _clock, _identity, _connections, _proximity, _passes, _ratings, _leaderboard
    if store is not None:
        _store = store
    if clock is not None:
        _clock = clock
    _identity = IdentityService(_store, clock=_clock)
    _connections = ConnectionService(_store, clock=_clock)
    _proximity = ProximityEvaluator(_store, clock=_clock)
    _passes = PassService(_store, clock=_clock, proximity=_proximity)
    _ratings = RatingEngine(_store, clock=_clock)
    _leaderboard = LeaderboardService(_store)


def configure_postgres(pool: asyncpg.Pool) -> None:
    configure(store=PostgresStore(pool))


def reset() -> None:
    """Fresh in-memory store and wall clock. Used by tests."""
    global _clock
    _clock = utcnow
    configure(store=InMemoryStore())


def get_store() -> Store:
    return _store


def get_clock() -> Callable[[], datetime]:
    return _clock


def get_identity_service() -> IdentityService:
    return _identity


def get_connection_service() -> ConnectionService:
    return _connections


def get_proximity_evaluator() -> ProximityEvaluator:
    return _proximity


def get_pass_service() -> PassService:
    return _passes


def get_rating_engine() -> RatingEngine:
    return _ratings


def get_leaderboard_service() -> LeaderboardService:
    return _leaderboard


configure()
