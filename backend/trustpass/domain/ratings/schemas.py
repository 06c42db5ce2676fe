"""Pydantic schemas for rating endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from trustpass.domain.ratings.models import Rating, SubmissionResult


class RatingSubmitRequest(BaseModel):
	ratee_id: UUID
	# left loose so the engine reports invalid_score instead of a schema error
	score: Any = Field(..., description="Integer from 1 to 5")


class OwnRating(BaseModel):
	id: UUID
	pass_id: UUID
	ratee_id: UUID
	score: int
	revealed: bool
	created_at: datetime
	revealed_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, rating: Rating) -> "OwnRating":
		return cls(
			id=rating.id,
			pass_id=rating.pass_id,
			ratee_id=rating.ratee_id,
			score=rating.score,
			revealed=rating.revealed,
			created_at=rating.created_at,
			revealed_at=rating.revealed_at,
		)


class ReceivedRating(BaseModel):
	id: UUID
	pass_id: UUID
	rater_id: UUID
	score: int
	revealed_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, rating: Rating) -> "ReceivedRating":
		return cls(
			id=rating.id,
			pass_id=rating.pass_id,
			rater_id=rating.rater_id,
			score=rating.score,
			revealed_at=rating.revealed_at,
		)


class SubmissionResponse(BaseModel):
	rating: OwnRating
	revealed: bool
	# only populated once both sides are in
	received: Optional[ReceivedRating] = None

	@classmethod
	def from_result(cls, result: SubmissionResult) -> "SubmissionResponse":
		return cls(
			rating=OwnRating.from_model(result.rating),
			revealed=result.revealed,
			received=ReceivedRating.from_model(result.counterpart) if result.counterpart else None,
		)


class ReceivedList(BaseModel):
	items: List[ReceivedRating]
