"""Domain models for interaction passes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PassKind(str, Enum):
	MEET = "meet"
	CALL = "call"
	CHAT = "chat"
	GPS_PROXIMITY = "gps_proximity"


MANUAL_KINDS = frozenset({PassKind.MEET, PassKind.CALL, PassKind.CHAT})


class PassStatus(str, Enum):
	PENDING = "pending"
	CONFIRMED = "confirmed"
	EXPIRED = "expired"


@dataclass(slots=True)
class InteractionPass:
	"""A time-boxed encounter between ``user_a`` (creator) and ``user_b``."""

	id: str
	kind: PassKind
	user_a: str
	user_b: str
	status: PassStatus
	created_at: datetime

	def involves(self, user_id: str) -> bool:
		return user_id in (self.user_a, self.user_b)

	def counterpart(self, user_id: str) -> str:
		return self.user_b if user_id == self.user_a else self.user_a

	@classmethod
	def from_record(cls, record) -> "InteractionPass":
		return cls(
			id=str(record["id"]),
			kind=PassKind(record["kind"]),
			user_a=str(record["user_a"]),
			user_b=str(record["user_b"]),
			status=PassStatus(record["status"]),
			created_at=record["created_at"],
		)
