"""Pydantic schemas for connection endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from trustpass.domain.connections.models import Connection, ConnectionView
from trustpass.domain.identity.schemas import PublicUser


class ConnectionRequest(BaseModel):
	target_id: UUID = Field(..., description="User the request is addressed to")


class ConnectionSummary(BaseModel):
	id: UUID
	user_a: UUID
	user_b: UUID
	status: Literal["pending", "accepted", "blocked"]
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_model(cls, connection: Connection) -> "ConnectionSummary":
		return cls(
			id=connection.id,
			user_a=connection.user_a,
			user_b=connection.user_b,
			status=connection.status.value,
			created_at=connection.created_at,
			updated_at=connection.updated_at,
		)


class ConnectionRow(ConnectionSummary):
	counterpart: PublicUser

	@classmethod
	def from_view(cls, view: ConnectionView) -> "ConnectionRow":
		base = ConnectionSummary.from_model(view.connection)
		return cls(**base.model_dump(), counterpart=PublicUser.from_user(view.counterpart))


class PairStatus(BaseModel):
	user_id: UUID
	status: Literal["none", "pending", "accepted", "blocked"]
	connection: Optional[ConnectionSummary] = None
