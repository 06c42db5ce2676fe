"""Outbound change events written to the transactional outbox."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


class EventType(str, Enum):
	CONNECTION_REQUESTED = "connection.requested"
	CONNECTION_ACCEPTED = "connection.accepted"
	PASS_CREATED = "pass.created"
	RATING_REVEALED = "rating.revealed"


@dataclass(slots=True)
class EngineEvent:
	"""A change notification addressed to one user. ``id`` is the consumer dedupe key."""

	id: str
	type: EventType
	recipient_id: str
	payload: Dict[str, Any]
	created_at: datetime
	published_at: Optional[datetime] = None
	seq: int = field(default=0, compare=False)

	@classmethod
	def new(cls, event_type: EventType, recipient_id: str, payload: Dict[str, Any], at: datetime) -> "EngineEvent":
		return cls(id=str(uuid4()), type=event_type, recipient_id=str(recipient_id), payload=payload, created_at=at)

	def to_wire(self) -> Dict[str, Any]:
		return {
			"event_id": self.id,
			"type": self.type.value,
			"recipient_id": self.recipient_id,
			"payload": self.payload,
			"created_at": self.created_at.isoformat(),
		}

	@classmethod
	def from_record(cls, record) -> "EngineEvent":
		payload = record["payload"]
		if isinstance(payload, str):
			payload = json.loads(payload)
		return cls(
			id=str(record["id"]),
			type=EventType(record["event_type"]),
			recipient_id=str(record["recipient_id"]),
			payload=dict(payload or {}),
			created_at=record["created_at"],
			published_at=record["published_at"],
			seq=int(record["seq"]),
		)
