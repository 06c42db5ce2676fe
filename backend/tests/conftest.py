import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from trustpass.domain import container
from trustpass.domain.connections.service import ConnectionService
from trustpass.domain.fixtures import seed_users
from trustpass.domain.identity.service import IdentityService
from trustpass.domain.leaderboard.service import LeaderboardService
from trustpass.domain.memory_store import InMemoryStore
from trustpass.domain.passes.service import PassService
from trustpass.domain.proximity.service import ProximityEvaluator
from trustpass.domain.ratings.service import RatingEngine
from trustpass.infra import postgres
from trustpass.infra.auth import AuthenticatedUser
from trustpass.main import app
from trustpass.settings import settings


class FakeClock:
	"""Deterministic clock; call it for ``now`` and ``advance`` to move time."""

	def __init__(self, start: datetime | None = None) -> None:
		self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **delta) -> datetime:
		self.now = self.now + timedelta(**delta)
		return self.now


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from trustpass.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Dev mode (so X-User-Id is honoured) on the in-memory store."""
	original_env = settings.environment
	original_backend = settings.store_backend
	settings.environment = "dev"
	settings.store_backend = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.store_backend = original_backend


@pytest.fixture(autouse=True)
def fresh_container():
	container.reset()
	yield
	container.reset()


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def store():
	return InMemoryStore()


@pytest.fixture
def engine(store, clock):
	"""Every engine service wired to one in-memory store and a fake clock."""
	proximity = ProximityEvaluator(store, clock=clock, threshold_m=50.0, stale_seconds=1800)
	ratings = RatingEngine(store, clock=clock, rating_window_days=7)
	return SimpleNamespace(
		store=store,
		clock=clock,
		identity=IdentityService(store, clock=clock),
		connections=ConnectionService(store, clock=clock, requests_per_minute=1000),
		proximity=proximity,
		passes=PassService(store, clock=clock, proximity=proximity, pair_cap=5, pair_window_seconds=12 * 3600),
		ratings=ratings,
		leaderboard=LeaderboardService(store, default_limit=50, max_limit=200),
	)


@pytest_asyncio.fixture
async def users(engine):
	return await seed_users(engine.identity)


def as_session(user) -> AuthenticatedUser:
	return AuthenticatedUser(id=user.id, username=user.username)


@pytest.fixture
def session():
	return as_session


@pytest.fixture
def connect(engine, session):
	"""Return a helper that makes two users accepted connections."""

	async def _connect(first, second):
		pending = await engine.connections.request_connection(session(first), second.id)
		return await engine.connections.accept_connection(session(second), pending.id)

	return _connect


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
