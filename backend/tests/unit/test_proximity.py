import math

import pytest

from trustpass.domain.identity.models import Location
from trustpass.domain.proximity.geo import EARTH_RADIUS_M, haversine_m
from trustpass.domain.proximity.service import ProximityEvaluator

BASE = (45.5048, -73.5772)


def _north_of(origin, meters):
    return origin[0] + math.degrees(meters / EARTH_RADIUS_M), origin[1]


def test_haversine_zero_and_one_degree():
    assert haversine_m(*BASE, *BASE) == 0.0
    one_degree = haversine_m(0.0, 0.0, 1.0, 0.0)
    assert one_degree == pytest.approx(111_195, rel=1e-4)


def test_haversine_is_symmetric():
    other = (45.5060, -73.5760)
    assert haversine_m(*BASE, *other) == pytest.approx(haversine_m(*other, *BASE))


async def _place(engine, session, user, point):
    return await engine.identity.update_location(session(user), point[0], point[1])


@pytest.mark.asyncio
async def test_threshold_is_inclusive(engine, users, session, connect):
    alice, bob = users["alice"], users["bob"]
    await connect(alice, bob)
    spot = _north_of(BASE, 40)
    await _place(engine, session, bob, spot)
    exact = haversine_m(*BASE, *spot)

    at_threshold = ProximityEvaluator(engine.store, clock=engine.clock, threshold_m=exact, stale_seconds=1800)
    matches = await at_threshold.query_nearby(alice.id, Location(*BASE))
    assert [m.user.id for m in matches] == [bob.id]
    assert matches[0].distance_m == exact

    just_inside = ProximityEvaluator(engine.store, clock=engine.clock, threshold_m=exact - 0.01, stale_seconds=1800)
    assert await just_inside.query_nearby(alice.id, Location(*BASE)) == []


@pytest.mark.asyncio
async def test_stale_and_missing_snapshots_are_excluded(engine, users, session, connect):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    await connect(alice, bob)
    await connect(alice, carol)
    await _place(engine, session, bob, _north_of(BASE, 10))
    # carol never shared a location
    assert [m.user.id for m in await engine.proximity.query_nearby(alice.id, Location(*BASE))] == [bob.id]

    engine.clock.advance(minutes=30)
    assert len(await engine.proximity.query_nearby(alice.id, Location(*BASE))) == 1
    engine.clock.advance(seconds=1)
    assert await engine.proximity.query_nearby(alice.id, Location(*BASE)) == []


@pytest.mark.asyncio
async def test_only_accepted_connections_are_candidates(engine, users, session, connect):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    await connect(alice, bob)
    await engine.connections.request_connection(session(alice), carol.id)
    for user in (bob, carol):
        await _place(engine, session, user, _north_of(BASE, 5))
    matches = await engine.proximity.query_nearby(alice.id, Location(*BASE))
    assert [m.user.id for m in matches] == [bob.id]


@pytest.mark.asyncio
async def test_results_sorted_by_distance(engine, users, session, connect):
    alice, bob, carol, dave = users["alice"], users["bob"], users["carol"], users["dave"]
    for other in (bob, carol, dave):
        await connect(alice, other)
    await _place(engine, session, bob, _north_of(BASE, 30))
    await _place(engine, session, carol, _north_of(BASE, 5))
    await _place(engine, session, dave, _north_of(BASE, 500))
    matches = await engine.proximity.query_nearby(alice.id, Location(*BASE))
    assert [m.user.username for m in matches] == ["carol", "bob"]


@pytest.mark.asyncio
async def test_query_nearby_swallows_store_failures(engine, users, monkeypatch):
    def _boom(*args, **kwargs):
        raise ConnectionError("store down")

    monkeypatch.setattr(engine.store, "transaction", _boom)
    assert await engine.proximity.query_nearby(users["alice"].id, Location(*BASE)) == []


@pytest.mark.asyncio
async def test_is_nearby_requires_both_fresh(engine, users, session, connect):
    alice, bob = users["alice"], users["bob"]
    await connect(alice, bob)
    await _place(engine, session, alice, BASE)
    assert await engine.proximity.is_nearby(alice.id, bob.id) == (False, None)

    await _place(engine, session, bob, _north_of(BASE, 20))
    nearby, distance = await engine.proximity.is_nearby(alice.id, bob.id)
    assert nearby is True
    assert distance == pytest.approx(20, abs=0.01)

    engine.clock.advance(minutes=31)
    assert await engine.proximity.is_nearby(alice.id, bob.id) == (False, None)
