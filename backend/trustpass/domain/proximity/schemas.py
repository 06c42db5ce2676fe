"""Pydantic schemas for the nearby scan."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel

from trustpass.domain.identity.schemas import PublicUser


class NearbyQuery(BaseModel):
	lat: float
	lon: float


class NearbyUser(BaseModel):
	user: PublicUser
	distance_m: float


class NearbyResponse(BaseModel):
	items: List[NearbyUser]
	threshold_m: float
	poll_after_seconds: int
