"""Double-blind rating and reveal engine."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

from trustpass.domain.common.pairs import pass_key, user_key, utcnow
from trustpass.domain.events.models import EngineEvent, EventType
from trustpass.domain.passes.models import InteractionPass, PassStatus
from trustpass.domain.ratings.exceptions import InvalidPass, InvalidScore
from trustpass.domain.ratings.models import MAX_SCORE, MIN_SCORE, Rating, SubmissionResult
from trustpass.domain.store import Store, Transaction
from trustpass.infra.auth import AuthenticatedUser
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings

logger = logging.getLogger(__name__)


def validate_score(score) -> int:
	# bool is an int subclass; True must not pass as a 1
	if isinstance(score, bool) or not isinstance(score, int):
		raise InvalidScore()
	if score < MIN_SCORE or score > MAX_SCORE:
		raise InvalidScore()
	return score


class RatingEngine:
	"""Accepts one rating per participant per pass and reveals both at once.

	A submission holds the pass lock plus both participants' user locks. The
	second submission for a pass therefore sees the first, flips both rows to
	revealed and recomputes both aggregates inside one transaction.
	"""

	def __init__(
		self,
		store: Store,
		*,
		clock: Callable[[], datetime] = utcnow,
		rating_window_days: Optional[int] = None,
	) -> None:
		self._store = store
		self._clock = clock
		self.rating_window = timedelta(
			days=rating_window_days if rating_window_days is not None else settings.pass_rating_window_days
		)

	def is_rateable(self, interaction_pass: InteractionPass, now: datetime) -> bool:
		if interaction_pass.status == PassStatus.EXPIRED:
			return False
		return now - interaction_pass.created_at <= self.rating_window

	async def submit_rating(
		self,
		session: AuthenticatedUser,
		pass_id: str,
		ratee_id: str,
		score,
	) -> SubmissionResult:
		try:
			score = validate_score(score)
		except InvalidScore:
			obs_metrics.inc_rating_reject(InvalidScore.reason)
			raise
		rater_id, ratee_id, pass_id = session.id, str(ratee_id), str(pass_id)
		now = self._clock()
		lock_keys = [pass_key(pass_id), user_key(rater_id), user_key(ratee_id)]
		try:
			async with self._store.transaction(lock_keys=lock_keys) as tx:
				await self._load_rateable_pass(tx, pass_id, rater_id, ratee_id, now)
				rating = await tx.insert_rating(
					Rating(
						id=str(uuid4()),
						pass_id=pass_id,
						rater_id=rater_id,
						ratee_id=ratee_id,
						score=score,
						revealed=False,
						created_at=now,
					)
				)
				complement = await tx.get_rating(pass_id, ratee_id)
				if complement is None:
					result = SubmissionResult(rating=rating, revealed=False)
				else:
					result = await self._reveal(tx, rating, complement, now)
		except Exception as exc:
			obs_metrics.inc_rating_reject(getattr(exc, "reason", "error"))
			raise
		obs_metrics.inc_rating_submitted("revealed" if result.revealed else "pending")
		logger.info("rating_submitted", extra={"pass_id": pass_id, "revealed": result.revealed})
		return result

	async def list_received_ratings(self, session: AuthenticatedUser, *, limit: int = 50) -> List[Rating]:
		"""Revealed ratings where the caller is the ratee."""
		limit = max(1, min(int(limit), 200))
		async with self._store.transaction() as tx:
			return list(await tx.list_revealed_for(session.id, limit))

	async def get_my_rating(self, session: AuthenticatedUser, pass_id: str) -> Optional[Rating]:
		async with self._store.transaction() as tx:
			return await tx.get_rating(str(pass_id), session.id)

	async def _load_rateable_pass(
		self,
		tx: Transaction,
		pass_id: str,
		rater_id: str,
		ratee_id: str,
		now: datetime,
	) -> InteractionPass:
		interaction_pass = await tx.get_pass(pass_id)
		if interaction_pass is None or rater_id == ratee_id:
			raise InvalidPass()
		if {interaction_pass.user_a, interaction_pass.user_b} != {rater_id, ratee_id}:
			raise InvalidPass()
		if not self.is_rateable(interaction_pass, now):
			raise InvalidPass()
		return interaction_pass

	async def _reveal(self, tx: Transaction, rating: Rating, complement: Rating, now: datetime) -> SubmissionResult:
		mine, theirs = await tx.mark_revealed([rating.id, complement.id], now)
		for revealed in (mine, theirs):
			ratee = await tx.recompute_score(revealed.ratee_id)
			await tx.append_event(
				EngineEvent.new(
					EventType.RATING_REVEALED,
					revealed.ratee_id,
					{
						"pass_id": revealed.pass_id,
						"rating_id": revealed.id,
						"score": revealed.score,
						"new_score": ratee.score,
						"rating_count": ratee.rating_count,
					},
					now,
				)
			)
		return SubmissionResult(rating=mine, revealed=True, counterpart=theirs)
