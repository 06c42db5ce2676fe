"""FastAPI route for the global leaderboard."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from trustpass.domain import container
from trustpass.domain.leaderboard.schemas import LeaderboardResponseSchema, LeaderboardRowSchema

router = APIRouter(tags=["leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponseSchema)
async def leaderboard_endpoint(limit: Optional[int] = Query(default=None)) -> LeaderboardResponseSchema:
	service = container.get_leaderboard_service()
	rows = await service.query_leaderboard(limit)
	return LeaderboardResponseSchema(
		limit=service.clamp_limit(limit),
		items=[LeaderboardRowSchema.from_row(row) for row in rows],
	)
