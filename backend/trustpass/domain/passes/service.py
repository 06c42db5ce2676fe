"""Interaction pass issuer."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

from trustpass.domain.common.pairs import pair_key, pass_key, utcnow
from trustpass.domain.events.models import EngineEvent, EventType
from trustpass.domain.passes import policy
from trustpass.domain.passes.exceptions import InvalidKind, NotNearby
from trustpass.domain.passes.models import InteractionPass, PassKind, PassStatus
from trustpass.domain.proximity.service import ProximityEvaluator
from trustpass.domain.store import Store, Transaction
from trustpass.infra.auth import AuthenticatedUser
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings

logger = logging.getLogger(__name__)


class PassService:
	"""Creates and confirms interaction passes.

	Proximity passes count and insert under the pair lock, so two concurrent
	requests can never both take the last slot of the pair cap.
	"""

	def __init__(
		self,
		store: Store,
		*,
		clock: Callable[[], datetime] = utcnow,
		proximity: Optional[ProximityEvaluator] = None,
		pair_cap: Optional[int] = None,
		pair_window_seconds: Optional[int] = None,
	) -> None:
		self._store = store
		self._clock = clock
		self._proximity = proximity or ProximityEvaluator(store, clock=clock)
		self._pair_cap = pair_cap if pair_cap is not None else settings.proximity_pass_cap
		self._pair_window = timedelta(
			seconds=pair_window_seconds if pair_window_seconds is not None else settings.proximity_pass_window_seconds
		)

	async def create_manual_pass(self, session: AuthenticatedUser, counterpart_id: str, kind) -> InteractionPass:
		try:
			parsed = policy.parse_manual_kind(kind)
		except InvalidKind:
			obs_metrics.inc_pass_reject("invalid_kind")
			raise
		user_a, user_b = session.id, str(counterpart_id)
		policy.guard_not_self(user_a, user_b)
		now = self._clock()
		try:
			async with self._store.transaction(lock_keys=[pair_key(user_a, user_b)]) as tx:
				await policy.ensure_counterpart(tx, user_b)
				await policy.ensure_not_blocked(tx, user_a, user_b)
				await policy.ensure_connected(tx, user_a, user_b)
				created = await self._issue(tx, parsed, user_a, user_b, PassStatus.PENDING, now)
		except Exception as exc:
			obs_metrics.inc_pass_reject(getattr(exc, "reason", "error"))
			raise
		obs_metrics.inc_pass_created(parsed.value)
		logger.info("pass_created", extra={"pass_id": created.id, "kind": parsed.value})
		return created

	async def create_proximity_pass(self, session: AuthenticatedUser, counterpart_id: str) -> InteractionPass:
		user_a, user_b = session.id, str(counterpart_id)
		policy.guard_not_self(user_a, user_b)
		now = self._clock()
		try:
			async with self._store.transaction(lock_keys=[pair_key(user_a, user_b)]) as tx:
				await policy.ensure_counterpart(tx, user_b)
				await policy.ensure_not_blocked(tx, user_a, user_b)
				distance = await self._proximity.pair_distance(tx, user_a, user_b, now)
				if distance is None:
					raise NotNearby()
				times = await tx.list_pass_times_between(user_a, user_b, now - self._pair_window)
				policy.enforce_pair_cap(times, cap=self._pair_cap, window=self._pair_window, now=now)
				created = await self._issue(tx, PassKind.GPS_PROXIMITY, user_a, user_b, PassStatus.CONFIRMED, now)
		except Exception as exc:
			obs_metrics.inc_pass_reject(getattr(exc, "reason", "error"))
			raise
		obs_metrics.inc_pass_created(PassKind.GPS_PROXIMITY.value)
		logger.info("pass_created", extra={"pass_id": created.id, "kind": PassKind.GPS_PROXIMITY.value})
		return created

	async def confirm_pass(self, session: AuthenticatedUser, pass_id: str) -> InteractionPass:
		async with self._store.transaction(lock_keys=[pass_key(pass_id)]) as tx:
			interaction_pass = policy.load_for_participant(await tx.get_pass(str(pass_id)), session.id)
			policy.guard_confirmable(interaction_pass, session.id)
			confirmed = await tx.set_pass_status(interaction_pass.id, PassStatus.CONFIRMED)
		logger.info("pass_confirmed", extra={"pass_id": confirmed.id})
		return confirmed

	async def get_pass(self, session: AuthenticatedUser, pass_id: str) -> InteractionPass:
		async with self._store.transaction() as tx:
			return policy.load_for_participant(await tx.get_pass(str(pass_id)), session.id)

	async def list_passes(self, session: AuthenticatedUser, *, limit: int = 50) -> List[InteractionPass]:
		limit = max(1, min(int(limit), 200))
		async with self._store.transaction() as tx:
			return list(await tx.list_passes_for(session.id, limit))

	async def _issue(
		self,
		tx: Transaction,
		kind: PassKind,
		user_a: str,
		user_b: str,
		status: PassStatus,
		now: datetime,
	) -> InteractionPass:
		created = await tx.insert_pass(
			InteractionPass(id=str(uuid4()), kind=kind, user_a=user_a, user_b=user_b, status=status, created_at=now)
		)
		await tx.append_event(
			EngineEvent.new(
				EventType.PASS_CREATED,
				user_b,
				{"pass_id": created.id, "kind": kind.value, "status": status.value, "created_by": user_a},
				now,
			)
		)
		return created

