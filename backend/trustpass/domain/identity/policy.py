"""Input guards for identity operations."""

from __future__ import annotations

import math
from typing import Optional
from uuid import UUID

from trustpass.domain.identity.exceptions import (
	InvalidDisplayName,
	InvalidIdentifier,
	InvalidLocation,
	InvalidUsername,
)
from trustpass.domain.identity.models import DISPLAY_NAME_MAX, SCAN_PREFIX, USERNAME_PATTERN, Location, normalise_username


def guard_username(raw: str) -> str:
	username = normalise_username(raw)
	if not USERNAME_PATTERN.match(username):
		raise InvalidUsername()
	return username


def guard_display_name(raw: Optional[str], *, fallback: Optional[str] = None) -> Optional[str]:
	if raw is None:
		return fallback
	name = raw.strip()
	if not name or len(name) > DISPLAY_NAME_MAX:
		raise InvalidDisplayName()
	return name


def guard_location(lat: float, lon: float) -> Location:
	try:
		lat_f, lon_f = float(lat), float(lon)
	except (TypeError, ValueError):
		raise InvalidLocation() from None
	if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
		raise InvalidLocation()
	if not -90.0 <= lat_f <= 90.0 or not -180.0 <= lon_f <= 180.0:
		raise InvalidLocation()
	return Location(lat=lat_f, lon=lon_f)


def guard_user_id(raw: str) -> str:
	try:
		return str(UUID(str(raw).strip()))
	except (TypeError, ValueError):
		raise InvalidIdentifier() from None


def parse_scan_payload(raw: str) -> str:
	"""Return the user id carried by a ``rating:<uuid>`` QR payload."""
	text = (raw or "").strip()
	if not text.startswith(SCAN_PREFIX):
		raise InvalidIdentifier()
	return guard_user_id(text[len(SCAN_PREFIX):])
