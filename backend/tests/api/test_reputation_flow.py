import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from trustpass.domain import container
from trustpass.domain.fixtures import seed_users
from trustpass.infra.redis import set_redis_client


@pytest_asyncio.fixture
async def seeded():
    return await seed_users(container.get_identity_service())


def _as(user):
    return {"X-User-Id": user.id}


@pytest.mark.asyncio
async def test_register_returns_token_usable_as_bearer(api_client):
    response = await api_client.post("/users", json={"username": "Erin", "display_name": "Erin"})
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["username"] == "erin"
    me = await api_client.get("/users/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]


@pytest.mark.asyncio
async def test_register_duplicate_username_conflicts(api_client, seeded):
    response = await api_client.post("/users", json={"username": "ALICE"})
    assert response.status_code == 409
    assert response.json()["detail"] == "username_taken"
    assert response.json()["request_id"]


@pytest.mark.asyncio
async def test_missing_credentials_are_unauthorised(api_client):
    response = await api_client.get("/users/me")
    assert response.status_code == 401
    bad = await api_client.get("/users/me", headers={"X-User-Id": "not-a-uuid"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_full_meet_and_reveal_over_http(api_client, seeded):
    alice, bob = seeded["alice"], seeded["bob"]

    requested = await api_client.post("/connections", json={"target_id": bob.id}, headers=_as(alice))
    assert requested.status_code == 201
    connection_id = requested.json()["id"]

    pending = await api_client.get("/connections/pending", headers=_as(bob))
    assert [row["id"] for row in pending.json()] == [connection_id]

    accepted = await api_client.post(f"/connections/{connection_id}/accept", headers=_as(bob))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    created = await api_client.post("/passes", json={"counterpart_id": bob.id, "kind": "meet"}, headers=_as(alice))
    assert created.status_code == 201
    pass_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    first = await api_client.post(f"/passes/{pass_id}/ratings", json={"ratee_id": bob.id, "score": 5}, headers=_as(alice))
    assert first.status_code == 201
    assert first.json()["revealed"] is False
    assert first.json()["received"] is None

    second = await api_client.post(f"/passes/{pass_id}/ratings", json={"ratee_id": alice.id, "score": 3}, headers=_as(bob))
    assert second.json()["revealed"] is True
    assert second.json()["received"]["score"] == 5

    me = await api_client.get("/users/me", headers=_as(alice))
    assert me.json()["score"] == 3.0
    assert me.json()["rating_count"] == 1

    received = await api_client.get("/ratings/received", headers=_as(bob))
    assert [item["score"] for item in received.json()["items"]] == [5]

    board = await api_client.get("/leaderboard")
    assert board.status_code == 200
    assert [row["username"] for row in board.json()["items"][:2]] == ["bob", "alice"]


@pytest.mark.asyncio
async def test_error_mapping(api_client, seeded):
    alice, bob = seeded["alice"], seeded["bob"]

    invalid_kind = await api_client.post(
        "/passes", json={"counterpart_id": bob.id, "kind": "gps_proximity"}, headers=_as(alice)
    )
    assert invalid_kind.status_code == 422
    assert invalid_kind.json()["detail"] == "invalid_kind"

    not_connected = await api_client.post("/passes", json={"counterpart_id": bob.id, "kind": "meet"}, headers=_as(alice))
    assert not_connected.status_code == 403
    assert not_connected.json()["detail"] == "not_connected"

    missing = await api_client.get("/passes/99999999-9999-4999-8999-999999999999", headers=_as(alice))
    assert missing.status_code == 404
    assert missing.json()["detail"] == "pass_not_found"

    await api_client.post("/connections", json={"target_id": bob.id}, headers=_as(alice))
    duplicate = await api_client.post("/connections", json={"target_id": alice.id}, headers=_as(bob))
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "duplicate_connection"


@pytest.mark.asyncio
async def test_block_then_connection_status(api_client, seeded):
    alice, bob = seeded["alice"], seeded["bob"]
    await api_client.post("/connections", json={"target_id": bob.id}, headers=_as(alice))
    blocked = await api_client.post(f"/blocks/{alice.id}", headers=_as(bob))
    assert blocked.status_code == 204
    status = await api_client.get(f"/connections/with/{bob.id}", headers=_as(alice))
    assert status.json()["status"] == "blocked"
    again = await api_client.post("/connections", json={"target_id": bob.id}, headers=_as(alice))
    assert again.status_code == 409
    assert again.json()["detail"] == "already_blocked"


@pytest.mark.asyncio
async def test_nearby_poll_updates_location_and_lists_connections(api_client, seeded):
    alice, bob = seeded["alice"], seeded["bob"]
    requested = await api_client.post("/connections", json={"target_id": bob.id}, headers=_as(alice))
    await api_client.post(f"/connections/{requested.json()['id']}/accept", headers=_as(bob))

    await api_client.post("/users/me/location", json={"lat": 45.50490, "lon": -73.5772}, headers=_as(bob))
    response = await api_client.post("/proximity/nearby", json={"lat": 45.5048, "lon": -73.5772}, headers=_as(alice))
    assert response.status_code == 200
    body = response.json()
    assert [item["user"]["id"] for item in body["items"]] == [bob.id]
    assert body["items"][0]["distance_m"] <= body["threshold_m"]
    assert body["poll_after_seconds"] > 0

    proximity_pass = await api_client.post("/passes/proximity", json={"counterpart_id": bob.id}, headers=_as(alice))
    assert proximity_pass.status_code == 201
    assert proximity_pass.json()["status"] == "confirmed"


@pytest.mark.asyncio
async def test_proximity_pass_rate_limit_sets_retry_after(api_client, seeded):
    alice, bob = seeded["alice"], seeded["bob"]
    requested = await api_client.post("/connections", json={"target_id": bob.id}, headers=_as(alice))
    await api_client.post(f"/connections/{requested.json()['id']}/accept", headers=_as(bob))
    await api_client.post("/users/me/location", json={"lat": 45.5048, "lon": -73.5772}, headers=_as(alice))
    await api_client.post("/users/me/location", json={"lat": 45.5049, "lon": -73.5772}, headers=_as(bob))

    for _ in range(5):
        ok = await api_client.post("/passes/proximity", json={"counterpart_id": bob.id}, headers=_as(alice))
        assert ok.status_code == 201
    limited = await api_client.post("/passes/proximity", json={"counterpart_id": bob.id}, headers=_as(alice))
    assert limited.status_code == 429
    assert limited.json()["detail"] == "pair_rate_limited"
    assert int(limited.headers["Retry-After"]) > 0


@pytest.mark.asyncio
async def test_scan_resolve(api_client, seeded):
    alice, bob = seeded["alice"], seeded["bob"]
    found = await api_client.post("/scan/resolve", json={"payload": f"rating:{bob.id}"}, headers=_as(alice))
    assert found.status_code == 200
    assert found.json()["username"] == "bob"
    rejected = await api_client.post("/scan/resolve", json={"payload": "hello"}, headers=_as(alice))
    assert rejected.status_code == 422
    assert rejected.json()["detail"] == "invalid_identifier"


class _UnreachableRedis:
    def pipeline(self, *args, **kwargs):
        raise RedisConnectionError("redis down")


@pytest.mark.asyncio
async def test_connection_request_with_redis_down_is_503(api_client, seeded, fake_redis):
    alice, bob = seeded["alice"], seeded["bob"]
    set_redis_client(_UnreachableRedis())
    try:
        response = await api_client.post("/connections", json={"target_id": bob.id}, headers=_as(alice))
    finally:
        set_redis_client(fake_redis)
    assert response.status_code == 503
    assert response.json()["detail"] == "store_unavailable"
