import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from trustpass.domain.common.errors import InvalidState, TransientStoreError
from trustpass.domain.connections.exceptions import (
    AlreadyBlocked,
    ConnectionForbidden,
    ConnectionRateLimited,
    DuplicateConnection,
    SelfConnection,
)
from trustpass.domain.connections.models import ConnectionStatus
from trustpass.domain.connections.service import ConnectionService
from trustpass.domain.events.models import EventType
from trustpass.infra.redis import set_redis_client


def _open_rows(store, first, second):
    pair = {first.id, second.id}
    return [
        c
        for c in store.connections.values()
        if {c.user_a, c.user_b} == pair and c.status != ConnectionStatus.BLOCKED
    ]


@pytest.mark.asyncio
async def test_request_then_accept(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    pending = await engine.connections.request_connection(session(alice), bob.id)
    assert pending.status == ConnectionStatus.PENDING
    assert (pending.user_a, pending.user_b) == (alice.id, bob.id)

    incoming = await engine.connections.list_pending_requests(session(bob))
    assert [view.connection.id for view in incoming] == [pending.id]
    assert incoming[0].counterpart.username == "alice"

    accepted = await engine.connections.accept_connection(session(bob), pending.id)
    assert accepted.status == ConnectionStatus.ACCEPTED
    rows = await engine.connections.list_connections(session(alice))
    assert [view.counterpart.id for view in rows] == [bob.id]


@pytest.mark.asyncio
async def test_request_and_accept_emit_events(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    pending = await engine.connections.request_connection(session(alice), bob.id)
    await engine.connections.accept_connection(session(bob), pending.id)
    events = [(e.type, e.recipient_id) for e in engine.store.outbox]
    assert events == [
        (EventType.CONNECTION_REQUESTED, bob.id),
        (EventType.CONNECTION_ACCEPTED, alice.id),
    ]


@pytest.mark.asyncio
async def test_self_connection_rejected(engine, users, session):
    alice = users["alice"]
    with pytest.raises(SelfConnection):
        await engine.connections.request_connection(session(alice), alice.id)


@pytest.mark.asyncio
async def test_reverse_request_is_duplicate(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    await engine.connections.request_connection(session(alice), bob.id)
    with pytest.raises(DuplicateConnection):
        await engine.connections.request_connection(session(bob), alice.id)


@pytest.mark.asyncio
async def test_concurrent_cross_requests_leave_one_row(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    results = await asyncio.gather(
        engine.connections.request_connection(session(alice), bob.id),
        engine.connections.request_connection(session(bob), alice.id),
        engine.connections.request_connection(session(alice), bob.id),
        return_exceptions=True,
    )
    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, DuplicateConnection) for f in failures)
    assert len(_open_rows(engine.store, alice, bob)) == 1


@pytest.mark.asyncio
async def test_only_recipient_can_accept(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    pending = await engine.connections.request_connection(session(alice), bob.id)
    with pytest.raises(ConnectionForbidden):
        await engine.connections.accept_connection(session(alice), pending.id)


@pytest.mark.asyncio
async def test_decline_removes_pending_and_allows_new_request(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    pending = await engine.connections.request_connection(session(alice), bob.id)
    await engine.connections.decline_connection(session(bob), pending.id)
    assert _open_rows(engine.store, alice, bob) == []
    again = await engine.connections.request_connection(session(bob), alice.id)
    assert again.status == ConnectionStatus.PENDING


@pytest.mark.asyncio
async def test_decline_accepted_is_invalid_state(engine, users, session, connect):
    alice, bob = users["alice"], users["bob"]
    accepted = await connect(alice, bob)
    with pytest.raises(InvalidState):
        await engine.connections.decline_connection(session(bob), accepted.id)


@pytest.mark.asyncio
async def test_block_is_terminal(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    pending = await engine.connections.request_connection(session(alice), bob.id)
    await engine.connections.block_user(session(bob), alice.id)

    with pytest.raises(InvalidState):
        await engine.connections.accept_connection(session(bob), pending.id)
    with pytest.raises(AlreadyBlocked):
        await engine.connections.request_connection(session(alice), bob.id)
    with pytest.raises(AlreadyBlocked):
        await engine.connections.request_connection(session(bob), alice.id)

    latest = await engine.connections.get_connection_between(session(alice), bob.id)
    assert latest.status == ConnectionStatus.BLOCKED


@pytest.mark.asyncio
async def test_block_is_idempotent_and_blocks_accepted(engine, users, session, connect):
    alice, bob = users["alice"], users["bob"]
    await connect(alice, bob)
    await engine.connections.block_user(session(alice), bob.id)
    await engine.connections.block_user(session(alice), bob.id)
    assert await engine.connections.list_connections(session(alice)) == []
    assert len(engine.store.blocks) == 1


@pytest.mark.asyncio
async def test_block_racing_accept_ends_blocked(engine, users, session):
    alice, bob = users["alice"], users["bob"]
    pending = await engine.connections.request_connection(session(alice), bob.id)
    await asyncio.gather(
        engine.connections.accept_connection(session(bob), pending.id),
        engine.connections.block_user(session(alice), bob.id),
        return_exceptions=True,
    )
    latest = await engine.connections.get_connection_between(session(alice), bob.id)
    assert latest.status == ConnectionStatus.BLOCKED


@pytest.mark.asyncio
async def test_self_block_rejected(engine, users, session):
    with pytest.raises(SelfConnection) as exc_info:
        await engine.connections.block_user(session(users["alice"]), users["alice"].id)
    assert exc_info.value.reason == "self_block"


@pytest.mark.asyncio
async def test_request_rate_limit(engine, users, session, fake_redis):
    limited = ConnectionService(engine.store, clock=engine.clock, requests_per_minute=2)
    alice = users["alice"]
    await limited.request_connection(session(alice), users["bob"].id)
    await limited.request_connection(session(alice), users["carol"].id)
    with pytest.raises(ConnectionRateLimited) as exc_info:
        await limited.request_connection(session(alice), users["dave"].id)
    assert 1 <= exc_info.value.retry_after_seconds <= 60


class _UnreachableRedis:
    def pipeline(self, *args, **kwargs):
        raise RedisConnectionError("redis down")


@pytest.mark.asyncio
async def test_request_with_redis_down_is_transient(engine, users, session, fake_redis):
    set_redis_client(_UnreachableRedis())
    try:
        with pytest.raises(TransientStoreError) as exc_info:
            await engine.connections.request_connection(session(users["alice"]), users["bob"].id)
    finally:
        set_redis_client(fake_redis)
    assert isinstance(exc_info.value.__cause__, RedisConnectionError)
    assert _open_rows(engine.store, users["alice"], users["bob"]) == []
    assert engine.store.outbox == []
