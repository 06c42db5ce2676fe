"""Domain models for user identity, score and location snapshot."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

USERNAME_PATTERN = re.compile(r"^[a-z0-9_.]{3,30}$")
DISPLAY_NAME_MAX = 80
SCAN_PREFIX = "rating:"
DEFAULT_AVATAR_TEMPLATE = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"


@dataclass(slots=True)
class Location:
	"""A lat/lon pair in decimal degrees."""

	lat: float
	lon: float


@dataclass(slots=True)
class User:
	"""User record. ``score`` and ``rating_count`` are derived from revealed ratings."""

	id: str
	username: str
	display_name: str
	avatar_uri: Optional[str]
	score: float
	rating_count: int
	created_at: datetime
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	location_updated_at: Optional[datetime] = None

	@property
	def location(self) -> Optional[Location]:
		if self.latitude is None or self.longitude is None:
			return None
		return Location(lat=self.latitude, lon=self.longitude)

	def has_fresh_location(self, now: datetime, stale_after: timedelta) -> bool:
		if self.location is None or self.location_updated_at is None:
			return False
		return now - self.location_updated_at <= stale_after

	@classmethod
	def from_record(cls, record) -> "User":
		return cls(
			id=str(record["id"]),
			username=str(record["username"]),
			display_name=str(record["display_name"]),
			avatar_uri=record["avatar_uri"],
			score=float(record["score"]),
			rating_count=int(record["rating_count"]),
			created_at=record["created_at"],
			latitude=record["latitude"],
			longitude=record["longitude"],
			location_updated_at=record["location_updated_at"],
		)


def normalise_username(raw: str) -> str:
	return (raw or "").strip().lower()


def default_avatar(username: str) -> str:
	return DEFAULT_AVATAR_TEMPLATE.format(seed=username)
