from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Iterator
from uuid import uuid4

import asyncpg
import pytest
import pytest_asyncio

from trustpass.domain.common.pairs import utcnow
from trustpass.domain.connections.exceptions import AlreadyBlocked, DuplicateConnection
from trustpass.domain.connections.models import Connection, ConnectionStatus
from trustpass.domain.connections.service import ConnectionService
from trustpass.domain.events.models import EngineEvent, EventType
from trustpass.domain.fixtures import seed_users
from trustpass.domain.identity.exceptions import UsernameTaken
from trustpass.domain.identity.service import IdentityService
from trustpass.domain.passes.service import PassService
from trustpass.domain.ratings.exceptions import DuplicateRating
from trustpass.domain.ratings.models import Rating
from trustpass.domain.ratings.service import RatingEngine
from trustpass.infra import postgres
from trustpass.infra.auth import AuthenticatedUser
from trustpass.infra.postgres_store import PostgresStore

pytestmark = pytest.mark.asyncio

REPO_ROOT = Path(__file__).resolve().parents[3]
MIGRATIONS_DIR = REPO_ROOT / "infra" / "migrations"


@pytest.fixture(scope="module")
def postgres_container() -> Iterator["PostgresContainer"]:
    testcontainers = pytest.importorskip(
        "testcontainers.postgres",
        reason="testcontainers.postgres is required for integration tests",
    )
    PostgresContainer = testcontainers.PostgresContainer
    try:
        container = PostgresContainer("postgres:16-alpine")
        container.start()
    except Exception as exc:  # pragma: no cover - environment without docker
        pytest.skip(f"unable to start postgres container: {exc}")
    try:
        yield container
    finally:
        container.stop()


async def _run_migrations(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("DROP SCHEMA IF EXISTS public CASCADE")
        await conn.execute("CREATE SCHEMA public")
        await conn.execute("GRANT ALL ON SCHEMA public TO PUBLIC")
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            await conn.execute(path.read_text(encoding="utf-8"))


@pytest_asyncio.fixture(scope="function")
async def postgres_pool(postgres_container) -> AsyncIterator[asyncpg.Pool]:
    url = postgres_container.get_connection_url().replace("postgresql+psycopg2", "postgresql")
    pool = await asyncpg.create_pool(dsn=url, min_size=1, max_size=6)
    await _run_migrations(pool)
    postgres.set_pool(pool)
    try:
        yield pool
    finally:
        postgres.set_pool(None)
        await pool.close()


@pytest_asyncio.fixture
async def pg(postgres_pool):
    store = PostgresStore(postgres_pool)
    identity = IdentityService(store, clock=utcnow)
    services = {
        "store": store,
        "pool": postgres_pool,
        "identity": identity,
        "connections": ConnectionService(store, clock=utcnow, requests_per_minute=1000),
        "passes": PassService(store, clock=utcnow, pair_cap=5, pair_window_seconds=12 * 3600),
        "ratings": RatingEngine(store, clock=utcnow, rating_window_days=7),
    }
    services["users"] = await seed_users(identity)
    return services


def _session(user) -> AuthenticatedUser:
    return AuthenticatedUser(id=user.id, username=user.username)


def _connection(user_a, user_b, status=ConnectionStatus.PENDING) -> Connection:
    now = utcnow()
    return Connection(id=str(uuid4()), user_a=user_a.id, user_b=user_b.id, status=status, created_at=now, updated_at=now)


async def _meet(pg, first, second):
    pending = await pg["connections"].request_connection(_session(first), second.id)
    await pg["connections"].accept_connection(_session(second), pending.id)
    return await pg["passes"].create_manual_pass(_session(first), second.id, "meet")


@pytest.mark.integration
async def test_username_index_is_case_insensitive(pg):
    with pytest.raises(UsernameTaken):
        await pg["identity"].register_user("ALICE")


@pytest.mark.integration
async def test_open_pair_index_rejects_reverse_row(pg):
    alice, bob = pg["users"]["alice"], pg["users"]["bob"]
    store = pg["store"]
    async with store.transaction() as tx:
        first = await tx.insert_connection(_connection(alice, bob))
    with pytest.raises(DuplicateConnection):
        async with store.transaction() as tx:
            await tx.insert_connection(_connection(bob, alice))

    async with store.transaction() as tx:
        await tx.set_connection_status(first.id, ConnectionStatus.BLOCKED, utcnow())
        reopened = await tx.insert_connection(_connection(bob, alice))
    assert reopened.status == ConnectionStatus.PENDING
    assert await pg["pool"].fetchval("SELECT COUNT(*) FROM connections") == 2


@pytest.mark.integration
async def test_concurrent_cross_requests_leave_one_row(pg):
    alice, bob = pg["users"]["alice"], pg["users"]["bob"]
    results = await asyncio.gather(
        pg["connections"].request_connection(_session(alice), bob.id),
        pg["connections"].request_connection(_session(bob), alice.id),
        pg["connections"].request_connection(_session(alice), bob.id),
        return_exceptions=True,
    )
    successes = [result for result in results if not isinstance(result, Exception)]
    failures = [result for result in results if isinstance(result, Exception)]
    assert len(successes) == 1
    assert all(isinstance(failure, DuplicateConnection) for failure in failures)
    assert await pg["pool"].fetchval("SELECT COUNT(*) FROM connections") == 1
    assert await pg["pool"].fetchval("SELECT COUNT(*) FROM event_outbox WHERE event_type = 'connection.requested'") == 1


@pytest.mark.integration
async def test_rating_index_maps_to_duplicate_rating(pg):
    alice, bob = pg["users"]["alice"], pg["users"]["bob"]
    interaction = await _meet(pg, alice, bob)
    rating = Rating(
        id=str(uuid4()),
        pass_id=interaction.id,
        rater_id=alice.id,
        ratee_id=bob.id,
        score=4,
        revealed=False,
        created_at=utcnow(),
    )
    async with pg["store"].transaction() as tx:
        await tx.insert_rating(rating)
    with pytest.raises(DuplicateRating):
        async with pg["store"].transaction() as tx:
            await tx.insert_rating(_copy_rating(rating))
    with pytest.raises(DuplicateRating):
        await pg["ratings"].submit_rating(_session(alice), interaction.id, bob.id, 2)
    assert await pg["pool"].fetchval("SELECT COUNT(*) FROM ratings") == 1


def _copy_rating(rating: Rating) -> Rating:
    return Rating(
        id=str(uuid4()),
        pass_id=rating.pass_id,
        rater_id=rating.rater_id,
        ratee_id=rating.ratee_id,
        score=rating.score,
        revealed=False,
        created_at=rating.created_at,
    )


@pytest.mark.integration
async def test_concurrent_submissions_reveal_exactly_once(pg):
    alice, bob = pg["users"]["alice"], pg["users"]["bob"]
    interaction = await _meet(pg, alice, bob)
    results = await asyncio.gather(
        pg["ratings"].submit_rating(_session(alice), interaction.id, bob.id, 4),
        pg["ratings"].submit_rating(_session(bob), interaction.id, alice.id, 2),
    )
    assert sorted(result.revealed for result in results) == [False, True]

    pool = pg["pool"]
    assert await pool.fetchval("SELECT COUNT(*) FROM ratings WHERE revealed") == 2
    assert await pool.fetchval("SELECT COUNT(*) FROM event_outbox WHERE event_type = 'rating.revealed'") == 2
    scores = {
        str(row["id"]): (row["score"], row["rating_count"])
        for row in await pool.fetch("SELECT id, score, rating_count FROM users WHERE id = ANY($1::uuid[])", [alice.id, bob.id])
    }
    assert scores[bob.id] == (4.0, 1)
    assert scores[alice.id] == (2.0, 1)


@pytest.mark.integration
async def test_score_is_mean_across_passes(pg):
    users = pg["users"]
    alice = users["alice"]
    for rater, score in ((users["bob"], 5), (users["carol"], 2), (users["dave"], 4)):
        interaction = await _meet(pg, rater, alice)
        await pg["ratings"].submit_rating(_session(rater), interaction.id, alice.id, score)
        await pg["ratings"].submit_rating(_session(alice), interaction.id, rater.id, 3)
    refreshed = await pg["identity"].get_user(alice.id)
    assert refreshed.rating_count == 3
    assert refreshed.score == pytest.approx((5 + 2 + 4) / 3)


@pytest.mark.integration
async def test_outbox_rows_follow_transaction_outcome(pg):
    alice, bob = pg["users"]["alice"], pg["users"]["bob"]
    store = pg["store"]
    await pg["connections"].block_user(_session(bob), alice.id)
    with pytest.raises(AlreadyBlocked):
        await pg["connections"].request_connection(_session(alice), bob.id)
    before = await pg["pool"].fetchval("SELECT COUNT(*) FROM event_outbox")

    with pytest.raises(RuntimeError):
        async with store.transaction() as tx:
            await tx.append_event(EngineEvent.new(EventType.PASS_CREATED, bob.id, {"pass_id": "x"}, utcnow()))
            raise RuntimeError("abort")
    assert await pg["pool"].fetchval("SELECT COUNT(*) FROM event_outbox") == before

    async with store.transaction() as tx:
        await tx.append_event(EngineEvent.new(EventType.PASS_CREATED, bob.id, {"pass_id": "y"}, utcnow()))
    unpublished = await store.fetch_unpublished(100)
    payloads = [event.payload for event in unpublished]
    assert {"pass_id": "y"} in payloads
    assert {"pass_id": "x"} not in payloads
    await store.mark_published([event.id for event in unpublished], utcnow())
    assert await store.fetch_unpublished(100) == []
