"""Pydantic schemas for identity endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from trustpass.domain.identity.models import User


class RegisterRequest(BaseModel):
	username: str = Field(..., description="Unique handle; stored trimmed and lower-cased")
	display_name: Optional[str] = None
	avatar_uri: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
	display_name: Optional[str] = None
	avatar_uri: Optional[str] = None


class LocationUpdateRequest(BaseModel):
	lat: float
	lon: float


class ScanResolveRequest(BaseModel):
	payload: str = Field(..., description="Raw string decoded from a profile QR code")


class PublicUser(BaseModel):
	id: UUID
	username: str
	display_name: str
	avatar_uri: Optional[str] = None
	score: float
	rating_count: int

	@classmethod
	def from_user(cls, user: User) -> "PublicUser":
		return cls(
			id=user.id,
			username=user.username,
			display_name=user.display_name,
			avatar_uri=user.avatar_uri,
			score=user.score,
			rating_count=user.rating_count,
		)


class SelfUser(PublicUser):
	created_at: datetime
	location_updated_at: Optional[datetime] = None
	has_location: bool = False

	@classmethod
	def from_user(cls, user: User) -> "SelfUser":
		return cls(
			id=user.id,
			username=user.username,
			display_name=user.display_name,
			avatar_uri=user.avatar_uri,
			score=user.score,
			rating_count=user.rating_count,
			created_at=user.created_at,
			location_updated_at=user.location_updated_at,
			has_location=user.location is not None,
		)


class RegisterResponse(BaseModel):
	user: SelfUser
	access_token: str
	token_type: str = "bearer"
