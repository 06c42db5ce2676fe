"""Pydantic schemas for interaction pass endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from trustpass.domain.passes.models import InteractionPass


class ManualPassRequest(BaseModel):
	counterpart_id: UUID
	kind: str = Field(..., description="meet, call or chat")


class ProximityPassRequest(BaseModel):
	counterpart_id: UUID


class PassSummary(BaseModel):
	id: UUID
	kind: Literal["meet", "call", "chat", "gps_proximity"]
	user_a: UUID
	user_b: UUID
	status: Literal["pending", "confirmed", "expired"]
	created_at: datetime

	@classmethod
	def from_model(cls, interaction_pass: InteractionPass) -> "PassSummary":
		return cls(
			id=interaction_pass.id,
			kind=interaction_pass.kind.value,
			user_a=interaction_pass.user_a,
			user_b=interaction_pass.user_b,
			status=interaction_pass.status.value,
			created_at=interaction_pass.created_at,
		)


class PassList(BaseModel):
	items: List[PassSummary]
