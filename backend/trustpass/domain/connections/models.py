"""Domain models for connections and blocks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - type-only imports
	from trustpass.domain.identity.models import User


class ConnectionStatus(str, Enum):
	"""Connection states tracked in the database."""

	PENDING = "pending"
	ACCEPTED = "accepted"
	BLOCKED = "blocked"


@dataclass(slots=True)
class Connection:
	"""Relationship between a requester (``user_a``) and recipient (``user_b``)."""

	id: str
	user_a: str
	user_b: str
	status: ConnectionStatus
	created_at: datetime
	updated_at: datetime

	def involves(self, user_id: str) -> bool:
		return user_id in (self.user_a, self.user_b)

	def counterpart(self, user_id: str) -> str:
		return self.user_b if user_id == self.user_a else self.user_a

	@classmethod
	def from_record(cls, record) -> "Connection":
		return cls(
			id=str(record["id"]),
			user_a=str(record["user_a"]),
			user_b=str(record["user_b"]),
			status=ConnectionStatus(record["status"]),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
		)


@dataclass(slots=True)
class Block:
	"""One-directional block record."""

	blocker_id: str
	blocked_id: str
	created_at: datetime

	@classmethod
	def from_record(cls, record) -> "Block":
		return cls(
			blocker_id=str(record["blocker_id"]),
			blocked_id=str(record["blocked_id"]),
			created_at=record["created_at"],
		)


@dataclass(slots=True)
class ConnectionView:
	"""A connection paired with the other party's user record."""

	connection: Connection
	counterpart: User
