"""Connection graph manager: request, answer and block flows."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from trustpass.domain.common.pairs import pair_key, utcnow
from trustpass.domain.connections import policy
from trustpass.domain.connections.exceptions import (
	AlreadyBlocked,
	ConnectionNotFound,
	ConnectionRateLimited,
	DuplicateConnection,
	SelfConnection,
)
from trustpass.domain.connections.models import Block, Connection, ConnectionStatus, ConnectionView
from trustpass.domain.events.models import EngineEvent, EventType
from trustpass.domain.store import Store
from trustpass.infra.auth import AuthenticatedUser
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings

logger = logging.getLogger(__name__)


class ConnectionService:
	"""Pending / accepted / blocked state machine for user pairs.

	Every write for a pair holds the ``pair:<low>:<high>`` lock, so a request
	racing a reverse request or a block resolves in lock order.
	"""

	def __init__(
		self,
		store: Store,
		*,
		clock: Callable[[], datetime] = utcnow,
		requests_per_minute: Optional[int] = None,
	) -> None:
		self._store = store
		self._clock = clock
		self._requests_per_minute = (
			requests_per_minute if requests_per_minute is not None else settings.connection_requests_per_minute
		)

	async def request_connection(self, session: AuthenticatedUser, target_id: str) -> Connection:
		requester_id = session.id
		target_id = str(target_id)
		policy.guard_not_self(requester_id, target_id)
		try:
			await policy.enforce_request_limit(requester_id, per_minute=self._requests_per_minute)
		except ConnectionRateLimited:
			obs_metrics.inc_connection_reject(ConnectionRateLimited.reason)
			raise

		now = self._clock()
		async with self._store.transaction(lock_keys=[pair_key(requester_id, target_id)]) as tx:
			await policy.ensure_user_exists(tx, requester_id)
			await policy.ensure_user_exists(tx, target_id)
			try:
				await policy.ensure_not_blocked(tx, requester_id, target_id)
				await policy.ensure_no_open_connection(tx, requester_id, target_id)
			except (AlreadyBlocked, DuplicateConnection) as exc:
				obs_metrics.inc_connection_reject(exc.reason)
				raise
			connection = await tx.insert_connection(
				Connection(
					id=str(uuid4()),
					user_a=requester_id,
					user_b=target_id,
					status=ConnectionStatus.PENDING,
					created_at=now,
					updated_at=now,
				)
			)
			requester = await tx.get_user(requester_id)
			await tx.append_event(
				EngineEvent.new(
					EventType.CONNECTION_REQUESTED,
					target_id,
					{
						"connection_id": connection.id,
						"requester_id": requester_id,
						"requester_username": requester.username if requester else None,
					},
					now,
				)
			)
		obs_metrics.inc_connection_transition("requested")
		logger.info("connection_requested", extra={"connection_id": connection.id})
		return connection

	async def accept_connection(self, session: AuthenticatedUser, connection_id: str) -> Connection:
		lock = await self._pair_lock_for(connection_id)
		now = self._clock()
		async with self._store.transaction(lock_keys=[lock]) as tx:
			connection = await policy.load_for_recipient(tx, connection_id, session.id)
			policy.guard_pending(connection)
			accepted = await tx.set_connection_status(connection.id, ConnectionStatus.ACCEPTED, now)
			await tx.append_event(
				EngineEvent.new(
					EventType.CONNECTION_ACCEPTED,
					accepted.user_a,
					{"connection_id": accepted.id, "accepted_by": session.id},
					now,
				)
			)
		obs_metrics.inc_connection_transition("accepted")
		logger.info("connection_accepted", extra={"connection_id": accepted.id})
		return accepted

	async def decline_connection(self, session: AuthenticatedUser, connection_id: str) -> None:
		lock = await self._pair_lock_for(connection_id)
		async with self._store.transaction(lock_keys=[lock]) as tx:
			connection = await policy.load_for_recipient(tx, connection_id, session.id)
			policy.guard_pending(connection)
			await tx.delete_connection(connection.id)
		obs_metrics.inc_connection_transition("declined")

	async def block_user(self, session: AuthenticatedUser, blocked_id: str) -> None:
		blocker_id = session.id
		blocked_id = str(blocked_id)
		if blocker_id == blocked_id:
			raise SelfConnection("self_block")
		now = self._clock()
		async with self._store.transaction(lock_keys=[pair_key(blocker_id, blocked_id)]) as tx:
			await policy.ensure_user_exists(tx, blocked_id)
			inserted = await tx.insert_block(Block(blocker_id=blocker_id, blocked_id=blocked_id, created_at=now))
			forced = await tx.block_connections_between(blocker_id, blocked_id, now)
		if inserted:
			obs_metrics.inc_connection_transition("blocked")
			logger.info("user_blocked", extra={"connections_blocked": forced})

	async def list_connections(self, session: AuthenticatedUser) -> List[ConnectionView]:
		async with self._store.transaction() as tx:
			rows = await tx.list_connections(session.id, ConnectionStatus.ACCEPTED)
			return await self._with_counterparts(tx, session.id, rows)

	async def list_pending_requests(self, session: AuthenticatedUser) -> List[ConnectionView]:
		async with self._store.transaction() as tx:
			rows = await tx.list_pending_incoming(session.id)
			return await self._with_counterparts(tx, session.id, rows)

	async def get_connection_between(self, session: AuthenticatedUser, other_id: str) -> Optional[Connection]:
		"""Latest connection row for the pair, blocked rows included."""
		async with self._store.transaction() as tx:
			return await tx.latest_connection_between(session.id, str(other_id))

	async def _pair_lock_for(self, connection_id: str) -> str:
		async with self._store.transaction() as tx:
			connection = await tx.get_connection(str(connection_id))
		if connection is None:
			raise ConnectionNotFound()
		return pair_key(connection.user_a, connection.user_b)

	@staticmethod
	async def _with_counterparts(tx, user_id: str, rows) -> List[ConnectionView]:
		views: List[ConnectionView] = []
		for connection in rows:
			other = await tx.get_user(connection.counterpart(user_id))
			if other is not None:
				views.append(ConnectionView(connection=connection, counterpart=other))
		return views
