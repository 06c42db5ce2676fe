"""Background sweep that expires passes past their rating window."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from trustpass.domain.common.pairs import pass_key, utcnow
from trustpass.domain.passes.models import PassStatus
from trustpass.domain.ratings.service import RatingEngine
from trustpass.domain.store import Store
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings

_LOG = logging.getLogger(__name__)

JOB_NAME = "pass_expiry"


class PassExpirySweeper:
	"""Marks aged passes expired and voids their one-sided ratings."""

	def __init__(
		self,
		store: Store,
		*,
		engine: Optional[RatingEngine] = None,
		clock: Callable[[], datetime] = utcnow,
		batch_size: int = 200,
		poll_interval: Optional[float] = None,
	) -> None:
		self._store = store
		self._clock = clock
		self._engine = engine or RatingEngine(store, clock=clock)
		self.batch_size = batch_size
		self.poll_interval = float(poll_interval if poll_interval is not None else settings.pass_expiry_sweep_seconds)
		self._running = False

	async def run_forever(self) -> None:
		"""Sweep on an interval until :meth:`stop` is called."""
		self._running = True
		while self._running:
			started = time.perf_counter()
			try:
				processed = await self.process_once()
			except Exception:
				_LOG.exception("pass_expiry.sweep_failed")
				obs_metrics.record_job_run(JOB_NAME, result="error", duration_seconds=time.perf_counter() - started)
				processed = 0
			else:
				obs_metrics.record_job_run(JOB_NAME, result="ok", duration_seconds=time.perf_counter() - started)
			if processed < self.batch_size:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		self._running = False

	async def process_once(self) -> int:
		"""Expire at most one batch. Returns the number of passes expired."""
		now = self._clock()
		cutoff = now - self._engine.rating_window
		async with self._store.transaction() as tx:
			candidates = await tx.list_unexpired_passes_before(cutoff, self.batch_size)
		expired = 0
		voided = 0
		for candidate in candidates:
			async with self._store.transaction(lock_keys=[pass_key(candidate.id)]) as tx:
				current = await tx.get_pass(candidate.id)
				if current is None or self._engine.is_rateable(current, now) or current.status == PassStatus.EXPIRED:
					continue
				await tx.set_pass_status(current.id, PassStatus.EXPIRED)
				voided += await tx.delete_unrevealed_for_pass(current.id)
				expired += 1
		if expired:
			obs_metrics.inc_passes_expired(expired)
			obs_metrics.inc_ratings_voided(voided)
			_LOG.info("pass_expiry.swept", extra={"expired": expired, "ratings_voided": voided})
		return expired


__all__ = ["PassExpirySweeper"]
