"""In-memory store used in tests and developer environments.

Writes are applied eagerly and recorded in an undo log, which is replayed in
reverse when the transaction body raises. Lock keys map to ``asyncio.Lock``
objects, so transactions that share a key are serialised. Rows touched by a
transaction are visible to unlocked readers before commit; engine
operations always lock what they read-then-write.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from trustpass.domain.connections.exceptions import ConnectionNotFound, DuplicateConnection
from trustpass.domain.connections.models import Block, Connection, ConnectionStatus
from trustpass.domain.events.models import EngineEvent
from trustpass.domain.identity.exceptions import UsernameTaken, UserNotFound
from trustpass.domain.identity.models import User
from trustpass.domain.passes.exceptions import PassNotFound
from trustpass.domain.passes.models import InteractionPass, PassStatus
from trustpass.domain.ratings.exceptions import DuplicateRating
from trustpass.domain.ratings.models import Rating

_MISSING = object()


class _KeyedLock:
	__slots__ = ("lock", "users")

	def __init__(self) -> None:
		self.lock = asyncio.Lock()
		self.users = 0


class InMemoryStore:
	"""Reference store used in tests and developer environments."""

	def __init__(self) -> None:
		self.users: Dict[str, User] = {}
		self.connections: Dict[str, Connection] = {}
		self.blocks: Dict[Tuple[str, str], Block] = {}
		self.passes: Dict[str, InteractionPass] = {}
		self.ratings: Dict[str, Rating] = {}
		self.outbox: List[EngineEvent] = []
		self._locks: Dict[str, _KeyedLock] = {}
		self._seq = 0

	@asynccontextmanager
	async def _hold(self, key: str) -> AsyncIterator[None]:
		"""Hold the lock for ``key``; the entry is dropped once nobody holds or awaits it."""
		entry = self._locks.get(key)
		if entry is None:
			entry = self._locks[key] = _KeyedLock()
		entry.users += 1
		try:
			async with entry.lock:
				yield
		finally:
			entry.users -= 1
			if entry.users == 0:
				del self._locks[key]

	def next_seq(self) -> int:
		self._seq += 1
		return self._seq

	@asynccontextmanager
	async def transaction(self, *, lock_keys: Sequence[str] = ()) -> AsyncIterator["_MemoryTransaction"]:
		async with AsyncExitStack() as stack:
			for key in sorted(set(lock_keys)):
				await stack.enter_async_context(self._hold(key))
			tx = _MemoryTransaction(self)
			try:
				yield tx
			except BaseException:
				tx.rollback()
				raise
			tx.commit()

	async def fetch_unpublished(self, limit: int) -> Sequence[EngineEvent]:
		pending = [event for event in self.outbox if event.published_at is None]
		pending.sort(key=lambda event: event.seq)
		return pending[:limit]

	async def mark_published(self, event_ids: Sequence[str], at: datetime) -> None:
		wanted = set(event_ids)
		self.outbox = [
			replace(event, published_at=at) if event.id in wanted and event.published_at is None else event
			for event in self.outbox
		]


class _MemoryTransaction:
	def __init__(self, store: InMemoryStore) -> None:
		self._store = store
		self._undo: List[Callable[[], None]] = []
		self._events: List[EngineEvent] = []

	def rollback(self) -> None:
		self._events.clear()
		while self._undo:
			self._undo.pop()()

	def _put(self, table: dict, key, value) -> None:
		previous = table.get(key, _MISSING)

		def _restore() -> None:
			if previous is _MISSING:
				table.pop(key, None)
			else:
				table[key] = previous

		table[key] = value
		self._undo.append(_restore)

	def _delete(self, table: dict, key) -> None:
		if key not in table:
			return
		previous = table.pop(key)
		self._undo.append(lambda: table.__setitem__(key, previous))

	# users -----------------------------------------------------------------

	async def get_user(self, user_id: str) -> Optional[User]:
		return self._store.users.get(str(user_id))

	async def get_user_by_username(self, username: str) -> Optional[User]:
		wanted = username.lower()
		for user in self._store.users.values():
			if user.username.lower() == wanted:
				return user
		return None

	async def insert_user(self, user: User) -> User:
		if await self.get_user_by_username(user.username) is not None:
			raise UsernameTaken()
		self._put(self._store.users, user.id, user)
		return user

	async def update_profile(self, user_id: str, *, display_name: Optional[str], avatar_uri: Optional[str]) -> Optional[User]:
		user = self._store.users.get(user_id)
		if user is None:
			return None
		updated = replace(
			user,
			display_name=display_name if display_name is not None else user.display_name,
			avatar_uri=avatar_uri if avatar_uri is not None else user.avatar_uri,
		)
		self._put(self._store.users, user_id, updated)
		return updated

	async def update_location(self, user_id: str, *, lat: float, lon: float, at: datetime) -> Optional[User]:
		user = self._store.users.get(user_id)
		if user is None:
			return None
		updated = replace(user, latitude=lat, longitude=lon, location_updated_at=at)
		self._put(self._store.users, user_id, updated)
		return updated

	async def recompute_score(self, user_id: str) -> User:
		user = self._store.users.get(user_id)
		if user is None:
			raise UserNotFound()
		scores = [r.score for r in self._store.ratings.values() if r.ratee_id == user_id and r.revealed]
		mean = sum(scores) / len(scores) if scores else 0.0
		updated = replace(user, score=float(mean), rating_count=len(scores))
		self._put(self._store.users, user_id, updated)
		return updated

	async def list_leaderboard(self, limit: int) -> Sequence[User]:
		ranked = sorted(self._store.users.values(), key=lambda u: (-u.score, -u.rating_count, u.username))
		return ranked[:limit]

	async def list_accepted_counterparts(self, user_id: str) -> Sequence[User]:
		result: List[User] = []
		for connection in await self.list_connections(user_id, ConnectionStatus.ACCEPTED):
			other = self._store.users.get(connection.counterpart(user_id))
			if other is not None:
				result.append(other)
		return result

	# connections -----------------------------------------------------------

	async def get_connection(self, connection_id: str) -> Optional[Connection]:
		return self._store.connections.get(str(connection_id))

	async def find_open_connection(self, user_a: str, user_b: str) -> Optional[Connection]:
		pair = {user_a, user_b}
		for connection in self._store.connections.values():
			if connection.status != ConnectionStatus.BLOCKED and {connection.user_a, connection.user_b} == pair:
				return connection
		return None

	async def insert_connection(self, connection: Connection) -> Connection:
		if await self.find_open_connection(connection.user_a, connection.user_b) is not None:
			raise DuplicateConnection()
		self._put(self._store.connections, connection.id, connection)
		return connection

	async def set_connection_status(self, connection_id: str, status: ConnectionStatus, at: datetime) -> Connection:
		connection = self._store.connections.get(connection_id)
		if connection is None:
			raise ConnectionNotFound()
		updated = replace(connection, status=status, updated_at=at)
		self._put(self._store.connections, connection_id, updated)
		return updated

	async def delete_connection(self, connection_id: str) -> None:
		self._delete(self._store.connections, connection_id)

	async def block_connections_between(self, user_a: str, user_b: str, at: datetime) -> int:
		pair = {user_a, user_b}
		changed = 0
		for connection in list(self._store.connections.values()):
			if {connection.user_a, connection.user_b} != pair or connection.status == ConnectionStatus.BLOCKED:
				continue
			await self.set_connection_status(connection.id, ConnectionStatus.BLOCKED, at)
			changed += 1
		return changed

	async def list_connections(self, user_id: str, status: ConnectionStatus) -> Sequence[Connection]:
		rows = [c for c in self._store.connections.values() if c.status == status and c.involves(user_id)]
		rows.sort(key=lambda c: c.updated_at, reverse=True)
		return rows

	async def list_pending_incoming(self, user_id: str) -> Sequence[Connection]:
		rows = [
			c for c in self._store.connections.values() if c.status == ConnectionStatus.PENDING and c.user_b == user_id
		]
		rows.sort(key=lambda c: c.created_at, reverse=True)
		return rows

	async def latest_connection_between(self, user_a: str, user_b: str) -> Optional[Connection]:
		pair = {user_a, user_b}
		rows = [c for c in self._store.connections.values() if {c.user_a, c.user_b} == pair]
		if not rows:
			return None
		return max(rows, key=lambda c: c.updated_at)

	async def insert_block(self, block: Block) -> bool:
		key = (block.blocker_id, block.blocked_id)
		if key in self._store.blocks:
			return False
		self._put(self._store.blocks, key, block)
		return True

	async def is_blocked_between(self, user_a: str, user_b: str) -> bool:
		return (user_a, user_b) in self._store.blocks or (user_b, user_a) in self._store.blocks

	# passes ----------------------------------------------------------------

	async def insert_pass(self, interaction_pass: InteractionPass) -> InteractionPass:
		self._put(self._store.passes, interaction_pass.id, interaction_pass)
		return interaction_pass

	async def get_pass(self, pass_id: str) -> Optional[InteractionPass]:
		return self._store.passes.get(str(pass_id))

	async def set_pass_status(self, pass_id: str, status: PassStatus) -> InteractionPass:
		current = self._store.passes.get(pass_id)
		if current is None:
			raise PassNotFound()
		updated = replace(current, status=status)
		self._put(self._store.passes, pass_id, updated)
		return updated

	async def list_pass_times_between(self, user_a: str, user_b: str, since: datetime) -> Sequence[datetime]:
		pair = {user_a, user_b}
		return sorted(
			p.created_at
			for p in self._store.passes.values()
			if {p.user_a, p.user_b} == pair and p.created_at > since
		)

	async def list_passes_for(self, user_id: str, limit: int) -> Sequence[InteractionPass]:
		rows = [p for p in self._store.passes.values() if p.involves(user_id)]
		rows.sort(key=lambda p: p.created_at, reverse=True)
		return rows[:limit]

	async def list_unexpired_passes_before(self, before: datetime, limit: int) -> Sequence[InteractionPass]:
		rows = [p for p in self._store.passes.values() if p.status != PassStatus.EXPIRED and p.created_at < before]
		rows.sort(key=lambda p: p.created_at)
		return rows[:limit]

	# ratings ---------------------------------------------------------------

	async def insert_rating(self, rating: Rating) -> Rating:
		if await self.get_rating(rating.pass_id, rating.rater_id) is not None:
			raise DuplicateRating()
		self._put(self._store.ratings, rating.id, rating)
		return rating

	async def get_rating(self, pass_id: str, rater_id: str) -> Optional[Rating]:
		for rating in self._store.ratings.values():
			if rating.pass_id == pass_id and rating.rater_id == rater_id:
				return rating
		return None

	async def mark_revealed(self, rating_ids: Sequence[str], at: datetime) -> Sequence[Rating]:
		updated: List[Rating] = []
		for rating_id in rating_ids:
			rating = replace(self._store.ratings[rating_id], revealed=True, revealed_at=at)
			self._put(self._store.ratings, rating_id, rating)
			updated.append(rating)
		return updated

	async def delete_unrevealed_for_pass(self, pass_id: str) -> int:
		doomed = [r.id for r in self._store.ratings.values() if r.pass_id == pass_id and not r.revealed]
		for rating_id in doomed:
			self._delete(self._store.ratings, rating_id)
		return len(doomed)

	async def list_revealed_for(self, user_id: str, limit: int) -> Sequence[Rating]:
		rows = [r for r in self._store.ratings.values() if r.ratee_id == user_id and r.revealed]
		rows.sort(key=lambda r: r.revealed_at or r.created_at, reverse=True)
		return rows[:limit]

	# outbox ----------------------------------------------------------------

	async def append_event(self, event: EngineEvent) -> None:
		# published to the outbox on commit only
		self._events.append(event)

	def commit(self) -> None:
		for event in self._events:
			self._store.outbox.append(replace(event, seq=self._store.next_seq()))
		self._events.clear()
		self._undo.clear()
