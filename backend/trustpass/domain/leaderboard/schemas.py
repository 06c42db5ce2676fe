"""Pydantic schemas for the leaderboard API."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from trustpass.domain.leaderboard.models import LeaderboardRow


class LeaderboardRowSchema(BaseModel):
	rank: int = Field(..., ge=1)
	user_id: UUID
	username: str
	display_name: Optional[str] = None
	avatar_uri: Optional[str] = None
	score: float
	rating_count: int

	@classmethod
	def from_row(cls, row: LeaderboardRow) -> "LeaderboardRowSchema":
		return cls(
			rank=row.rank,
			user_id=row.user.id,
			username=row.user.username,
			display_name=row.user.display_name,
			avatar_uri=row.user.avatar_uri,
			score=row.user.score,
			rating_count=row.user.rating_count,
		)


class LeaderboardResponseSchema(BaseModel):
	limit: int
	items: list[LeaderboardRowSchema]
