"""Domain models for double-blind ratings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

MIN_SCORE = 1
MAX_SCORE = 5


@dataclass(slots=True)
class Rating:
	"""One direction of a pass rating. Hidden from everyone but its rater until revealed."""

	id: str
	pass_id: str
	rater_id: str
	ratee_id: str
	score: int
	revealed: bool
	created_at: datetime
	revealed_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record) -> "Rating":
		return cls(
			id=str(record["id"]),
			pass_id=str(record["pass_id"]),
			rater_id=str(record["rater_id"]),
			ratee_id=str(record["ratee_id"]),
			score=int(record["score"]),
			revealed=bool(record["revealed"]),
			created_at=record["created_at"],
			revealed_at=record["revealed_at"],
		)


@dataclass(slots=True)
class SubmissionResult:
	"""Outcome of a submission: the rater's row, plus both rows when it triggered a reveal."""

	rating: Rating
	revealed: bool
	counterpart: Optional[Rating] = None
