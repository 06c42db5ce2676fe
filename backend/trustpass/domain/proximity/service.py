"""Proximity evaluator over stored location snapshots and the connection graph."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from trustpass.domain.common.pairs import utcnow
from trustpass.domain.connections.models import ConnectionStatus
from trustpass.domain.identity.models import Location, User
from trustpass.domain.proximity.geo import haversine_m
from trustpass.domain.proximity.models import NearbyMatch
from trustpass.domain.store import Store, Transaction
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings

logger = logging.getLogger(__name__)


class ProximityEvaluator:
	"""Decides who is nearby. Computed fresh on every call; nothing is cached.

	A counterpart is nearby when its snapshot is no older than the staleness
	window and its distance is at most the threshold (inclusive). Missing or
	stale snapshots never count as zero distance.
	"""

	def __init__(
		self,
		store: Store,
		*,
		clock: Callable[[], datetime] = utcnow,
		threshold_m: Optional[float] = None,
		stale_seconds: Optional[int] = None,
	) -> None:
		self._store = store
		self._clock = clock
		self.threshold_m = float(threshold_m if threshold_m is not None else settings.proximity_threshold_m)
		self.stale_after = timedelta(
			seconds=stale_seconds if stale_seconds is not None else settings.location_stale_seconds
		)

	def distance_within(self, origin: Location, other: User, now: datetime) -> Optional[float]:
		"""Distance to ``other`` when it counts as nearby, else ``None``."""
		if not other.has_fresh_location(now, self.stale_after):
			return None
		target = other.location
		distance = haversine_m(origin.lat, origin.lon, target.lat, target.lon)
		if distance > self.threshold_m:
			return None
		return distance

	async def pair_distance(self, tx: Transaction, user_a: str, user_b: str, now: datetime) -> Optional[float]:
		"""Distance between two connected users with fresh snapshots, else ``None``."""
		connection = await tx.find_open_connection(user_a, user_b)
		if connection is None or connection.status != ConnectionStatus.ACCEPTED:
			return None
		first = await tx.get_user(user_a)
		second = await tx.get_user(user_b)
		if first is None or second is None:
			return None
		if not first.has_fresh_location(now, self.stale_after):
			return None
		return self.distance_within(first.location, second, now)

	async def is_nearby(self, user_a: str, user_b: str) -> Tuple[bool, Optional[float]]:
		async with self._store.transaction() as tx:
			distance = await self.pair_distance(tx, str(user_a), str(user_b), self._clock())
		return distance is not None, distance

	async def query_nearby(self, user_id: str, location: Location) -> List[NearbyMatch]:
		"""Accepted counterparts near ``location``, closest first.

		Best-effort: a failure is logged and yields an empty list.
		"""
		try:
			now = self._clock()
			async with self._store.transaction() as tx:
				candidates = await tx.list_accepted_counterparts(str(user_id))
			matches: List[NearbyMatch] = []
			for candidate in candidates:
				distance = self.distance_within(location, candidate, now)
				if distance is not None:
					matches.append(NearbyMatch(user=candidate, distance_m=distance))
			matches.sort(key=lambda match: (match.distance_m, match.user.username))
		except Exception:
			logger.warning("nearby_scan_failed", exc_info=True)
			obs_metrics.inc_proximity_query("error")
			return []
		obs_metrics.inc_proximity_query("ok", len(matches))
		return matches
