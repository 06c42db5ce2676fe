"""Global leaderboard over revealed-rating aggregates."""

from __future__ import annotations

from typing import List, Optional, Sequence

from trustpass.domain.identity.models import User
from trustpass.domain.leaderboard.models import LeaderboardRow
from trustpass.domain.store import Store
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings


def _rank_rows(users: Sequence[User]) -> List[LeaderboardRow]:
	return [LeaderboardRow(rank=index, user=user) for index, user in enumerate(users, start=1)]


class LeaderboardService:
	"""Users ordered by score, then rating count, then username."""

	def __init__(self, store: Store, *, default_limit: Optional[int] = None, max_limit: Optional[int] = None) -> None:
		self._store = store
		self.default_limit = default_limit if default_limit is not None else settings.leaderboard_default_limit
		self.max_limit = max_limit if max_limit is not None else settings.leaderboard_max_limit

	def clamp_limit(self, limit: Optional[int]) -> int:
		if limit is None:
			return self.default_limit
		return max(1, min(int(limit), self.max_limit))

	async def query_leaderboard(self, limit: Optional[int] = None) -> List[LeaderboardRow]:
		size = self.clamp_limit(limit)
		async with self._store.transaction() as tx:
			users = await tx.list_leaderboard(size)
		obs_metrics.inc_leaderboard_query()
		return _rank_rows(users)
