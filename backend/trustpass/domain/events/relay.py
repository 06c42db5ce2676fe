"""Outbox relay: drains committed events to Redis and Socket.IO."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from trustpass.domain.common.pairs import utcnow
from trustpass.domain.events import sockets
from trustpass.domain.events.models import EngineEvent
from trustpass.domain.store import Store
from trustpass.infra.redis import redis_client
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings

_LOG = logging.getLogger(__name__)

STREAM_EVENTS = "x:trustpass.events"
JOB_NAME = "event_relay"

Publisher = Callable[[EngineEvent], Awaitable[None]]


async def publish_to_stream(event: EngineEvent) -> None:
	wire = event.to_wire()
	await redis_client.xadd_capped(
		STREAM_EVENTS,
		{
			"event_id": wire["event_id"],
			"type": wire["type"],
			"recipient_id": wire["recipient_id"],
			"created_at": wire["created_at"],
			"payload": json.dumps(wire["payload"], default=str),
		},
		maxlen=settings.event_stream_maxlen,
	)


async def publish(event: EngineEvent) -> None:
	await publish_to_stream(event)
	await sockets.emit_event(event)


class EventRelay:
	"""Periodically reads unpublished outbox rows and publishes them in order.

	Rows are marked published only after a successful publish, so a crash
	between the two re-delivers; consumers de-duplicate on ``event_id``.
	"""

	def __init__(
		self,
		store: Store,
		*,
		publisher: Optional[Publisher] = None,
		clock: Callable[[], datetime] = utcnow,
		batch_size: Optional[int] = None,
		poll_interval: Optional[float] = None,
	) -> None:
		self._store = store
		self._publish = publisher or publish
		self._clock = clock
		self.batch_size = batch_size or settings.event_relay_batch_size
		self.poll_interval = float(poll_interval if poll_interval is not None else settings.event_relay_poll_seconds)
		self._running = False

	async def run_forever(self) -> None:
		"""Continuously drain the outbox until :meth:`stop` is called."""
		self._running = True
		while self._running:
			started = time.perf_counter()
			try:
				processed = await self.process_once()
			except Exception:
				_LOG.exception("event_relay.batch_failed")
				obs_metrics.record_job_run(JOB_NAME, result="error", duration_seconds=time.perf_counter() - started)
				processed = 0
			if processed == 0:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		"""Request the worker to stop after the current iteration."""
		self._running = False

	async def process_once(self) -> int:
		"""Publish at most one batch. Returns the number of events published."""
		events = await self._store.fetch_unpublished(self.batch_size)
		if not events:
			return 0
		published: List[str] = []
		try:
			for event in events:
				await self._publish(event)
				published.append(event.id)
				obs_metrics.inc_event_published(event.type.value)
		finally:
			if published:
				await self._store.mark_published(published, self._clock())
		return len(published)


__all__ = ["EventRelay", "STREAM_EVENTS", "publish"]
