"""Domain models used by the proximity evaluator."""

from __future__ import annotations

from dataclasses import dataclass

from trustpass.domain.identity.models import User


@dataclass(slots=True)
class NearbyMatch:
	"""An accepted-connection counterpart within the threshold."""

	user: User
	distance_m: float
