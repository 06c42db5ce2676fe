from dataclasses import replace

import pytest

from trustpass.domain.leaderboard.service import LeaderboardService


def _set_score(store, user, score, count):
    store.users[user.id] = replace(store.users[user.id], score=score, rating_count=count)


@pytest.mark.asyncio
async def test_ordering_and_ranks(engine, users):
    _set_score(engine.store, users["alice"], 4.5, 2)
    _set_score(engine.store, users["bob"], 4.5, 6)
    _set_score(engine.store, users["carol"], 3.0, 1)
    _set_score(engine.store, users["dave"], 3.0, 1)

    rows = await engine.leaderboard.query_leaderboard()
    assert [(row.rank, row.user.username) for row in rows] == [
        (1, "bob"),
        (2, "alice"),
        (3, "carol"),
        (4, "dave"),
    ]


@pytest.mark.asyncio
async def test_limit_is_clamped(engine, users):
    service = LeaderboardService(engine.store, default_limit=3, max_limit=200)
    assert len(await service.query_leaderboard()) == 3
    assert len(await service.query_leaderboard(0)) == 1
    assert len(await service.query_leaderboard(10_000)) == 4
    assert service.clamp_limit(-5) == 1
    assert service.clamp_limit(500) == 200
