"""PostgreSQL-backed store for the reputation engine using asyncpg.

Transactions run at READ COMMITTED. Named lock keys become transaction-scoped
advisory locks taken in sorted order before the body runs, and every
statement after that sees rows committed by whoever held the lock before.
Unique indexes on the open connection pair and on ``(pass_id, rater_id)``
back the application-level checks.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

import asyncpg
from asyncpg import exceptions as pg_exc

from trustpass.domain.common.errors import TransientStoreError
from trustpass.domain.connections.exceptions import ConnectionNotFound, DuplicateConnection
from trustpass.domain.connections.models import Block, Connection, ConnectionStatus
from trustpass.domain.events.models import EngineEvent
from trustpass.domain.identity.exceptions import UsernameTaken, UserNotFound
from trustpass.domain.identity.models import User
from trustpass.domain.passes.exceptions import PassNotFound
from trustpass.domain.passes.models import InteractionPass, PassStatus
from trustpass.domain.ratings.exceptions import DuplicateRating
from trustpass.domain.ratings.models import Rating

_TRANSIENT_ERRORS = (
	pg_exc.PostgresConnectionError,
	pg_exc.InterfaceError,
	pg_exc.TooManyConnectionsError,
	pg_exc.CannotConnectNowError,
	pg_exc.QueryCanceledError,
	ConnectionError,
	OSError,
	asyncio.TimeoutError,
)

_USER_FIELDS = (
	"id",
	"username",
	"display_name",
	"avatar_uri",
	"score",
	"rating_count",
	"latitude",
	"longitude",
	"location_updated_at",
	"created_at",
)
_USER_COLUMNS = ", ".join(_USER_FIELDS)
_USER_COLUMNS_U = ", ".join(f"u.{name}" for name in _USER_FIELDS)
_PAIR_MATCH = (
	"LEAST(user_a, user_b) = LEAST($1::uuid, $2::uuid) "
	"AND GREATEST(user_a, user_b) = GREATEST($1::uuid, $2::uuid)"
)


class PostgresStore:
	"""Store implementation over an asyncpg pool."""

	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool

	@asynccontextmanager
	async def transaction(self, *, lock_keys: Sequence[str] = ()) -> AsyncIterator["PostgresTransaction"]:
		try:
			async with self._pool.acquire() as conn:
				async with conn.transaction():
					for key in sorted(set(lock_keys)):
						await conn.execute("SELECT pg_advisory_xact_lock(hashtextextended($1, 0))", key)
					yield PostgresTransaction(conn)
		except _TRANSIENT_ERRORS as exc:
			raise TransientStoreError() from exc

	async def fetch_unpublished(self, limit: int) -> Sequence[EngineEvent]:
		try:
			rows = await self._pool.fetch(
				"""
				SELECT seq, id, event_type, recipient_id, payload, created_at, published_at
				FROM event_outbox
				WHERE published_at IS NULL
				ORDER BY seq
				LIMIT $1
				""",
				limit,
			)
		except _TRANSIENT_ERRORS as exc:
			raise TransientStoreError() from exc
		return [EngineEvent.from_record(row) for row in rows]

	async def mark_published(self, event_ids: Sequence[str], at: datetime) -> None:
		if not event_ids:
			return
		try:
			await self._pool.execute(
				"UPDATE event_outbox SET published_at = $2 WHERE id = ANY($1::uuid[]) AND published_at IS NULL",
				list(event_ids),
				at,
			)
		except _TRANSIENT_ERRORS as exc:
			raise TransientStoreError() from exc


class PostgresTransaction:
	def __init__(self, conn: asyncpg.Connection) -> None:
		self._conn = conn

	# users -----------------------------------------------------------------

	async def get_user(self, user_id: str) -> Optional[User]:
		row = await self._conn.fetchrow(f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1", user_id)
		return User.from_record(row) if row else None

	async def get_user_by_username(self, username: str) -> Optional[User]:
		row = await self._conn.fetchrow(
			f"SELECT {_USER_COLUMNS} FROM users WHERE LOWER(username) = LOWER($1)",
			username,
		)
		return User.from_record(row) if row else None

	async def insert_user(self, user: User) -> User:
		try:
			row = await self._conn.fetchrow(
				f"""
				INSERT INTO users (id, username, display_name, avatar_uri, score, rating_count, created_at)
				VALUES ($1, $2, $3, $4, 0, 0, $5)
				RETURNING {_USER_COLUMNS}
				""",
				user.id,
				user.username,
				user.display_name,
				user.avatar_uri,
				user.created_at,
			)
		except pg_exc.UniqueViolationError as exc:
			raise UsernameTaken() from exc
		return User.from_record(row)

	async def update_profile(self, user_id: str, *, display_name: Optional[str], avatar_uri: Optional[str]) -> Optional[User]:
		row = await self._conn.fetchrow(
			f"""
			UPDATE users
			SET display_name = COALESCE($2, display_name),
				avatar_uri = COALESCE($3, avatar_uri)
			WHERE id = $1
			RETURNING {_USER_COLUMNS}
			""",
			user_id,
			display_name,
			avatar_uri,
		)
		return User.from_record(row) if row else None

	async def update_location(self, user_id: str, *, lat: float, lon: float, at: datetime) -> Optional[User]:
		row = await self._conn.fetchrow(
			f"""
			UPDATE users
			SET latitude = $2, longitude = $3, location_updated_at = $4
			WHERE id = $1
			RETURNING {_USER_COLUMNS}
			""",
			user_id,
			lat,
			lon,
			at,
		)
		return User.from_record(row) if row else None

	async def recompute_score(self, user_id: str) -> User:
		row = await self._conn.fetchrow(
			f"""
			UPDATE users u
			SET score = COALESCE(agg.mean, 0), rating_count = agg.total
			FROM (
				SELECT AVG(score)::float8 AS mean, COUNT(*)::int AS total
				FROM ratings
				WHERE ratee_id = $1 AND revealed
			) agg
			WHERE u.id = $1
			RETURNING {_USER_COLUMNS_U}
			""",
			user_id,
		)
		if row is None:
			raise UserNotFound()
		return User.from_record(row)

	async def list_leaderboard(self, limit: int) -> Sequence[User]:
		rows = await self._conn.fetch(
			f"""
			SELECT {_USER_COLUMNS}
			FROM users
			ORDER BY score DESC, rating_count DESC, username ASC
			LIMIT $1
			""",
			limit,
		)
		return [User.from_record(row) for row in rows]

	async def list_accepted_counterparts(self, user_id: str) -> Sequence[User]:
		rows = await self._conn.fetch(
			f"""
			SELECT {_USER_COLUMNS_U}
			FROM connections c
			JOIN users u ON u.id = CASE WHEN c.user_a = $1 THEN c.user_b ELSE c.user_a END
			WHERE c.status = 'accepted' AND (c.user_a = $1 OR c.user_b = $1)
			""",
			user_id,
		)
		return [User.from_record(row) for row in rows]

	# connections -----------------------------------------------------------

	async def get_connection(self, connection_id: str) -> Optional[Connection]:
		row = await self._conn.fetchrow("SELECT * FROM connections WHERE id = $1", connection_id)
		return Connection.from_record(row) if row else None

	async def find_open_connection(self, user_a: str, user_b: str) -> Optional[Connection]:
		row = await self._conn.fetchrow(
			f"SELECT * FROM connections WHERE {_PAIR_MATCH} AND status <> 'blocked'",
			user_a,
			user_b,
		)
		return Connection.from_record(row) if row else None

	async def insert_connection(self, connection: Connection) -> Connection:
		try:
			row = await self._conn.fetchrow(
				"""
				INSERT INTO connections (id, user_a, user_b, status, created_at, updated_at)
				VALUES ($1, $2, $3, $4, $5, $6)
				RETURNING *
				""",
				connection.id,
				connection.user_a,
				connection.user_b,
				connection.status.value,
				connection.created_at,
				connection.updated_at,
			)
		except pg_exc.UniqueViolationError as exc:
			raise DuplicateConnection() from exc
		return Connection.from_record(row)

	async def set_connection_status(self, connection_id: str, status: ConnectionStatus, at: datetime) -> Connection:
		row = await self._conn.fetchrow(
			"UPDATE connections SET status = $2, updated_at = $3 WHERE id = $1 RETURNING *",
			connection_id,
			status.value,
			at,
		)
		if row is None:
			raise ConnectionNotFound()
		return Connection.from_record(row)

	async def delete_connection(self, connection_id: str) -> None:
		await self._conn.execute("DELETE FROM connections WHERE id = $1", connection_id)

	async def block_connections_between(self, user_a: str, user_b: str, at: datetime) -> int:
		result = await self._conn.execute(
			f"UPDATE connections SET status = 'blocked', updated_at = $3 WHERE {_PAIR_MATCH} AND status <> 'blocked'",
			user_a,
			user_b,
			at,
		)
		return int(result.split()[-1])

	async def list_connections(self, user_id: str, status: ConnectionStatus) -> Sequence[Connection]:
		rows = await self._conn.fetch(
			"""
			SELECT * FROM connections
			WHERE status = $2 AND (user_a = $1 OR user_b = $1)
			ORDER BY updated_at DESC
			""",
			user_id,
			status.value,
		)
		return [Connection.from_record(row) for row in rows]

	async def list_pending_incoming(self, user_id: str) -> Sequence[Connection]:
		rows = await self._conn.fetch(
			"SELECT * FROM connections WHERE status = 'pending' AND user_b = $1 ORDER BY created_at DESC",
			user_id,
		)
		return [Connection.from_record(row) for row in rows]

	async def latest_connection_between(self, user_a: str, user_b: str) -> Optional[Connection]:
		row = await self._conn.fetchrow(
			f"SELECT * FROM connections WHERE {_PAIR_MATCH} ORDER BY updated_at DESC LIMIT 1",
			user_a,
			user_b,
		)
		return Connection.from_record(row) if row else None

	async def insert_block(self, block: Block) -> bool:
		result = await self._conn.execute(
			"""
			INSERT INTO blocks (blocker_id, blocked_id, created_at)
			VALUES ($1, $2, $3)
			ON CONFLICT (blocker_id, blocked_id) DO NOTHING
			""",
			block.blocker_id,
			block.blocked_id,
			block.created_at,
		)
		return result.endswith(" 1")

	async def is_blocked_between(self, user_a: str, user_b: str) -> bool:
		found = await self._conn.fetchval(
			"""
			SELECT 1 FROM blocks
			WHERE (blocker_id = $1 AND blocked_id = $2) OR (blocker_id = $2 AND blocked_id = $1)
			LIMIT 1
			""",
			user_a,
			user_b,
		)
		return found is not None

	# passes ----------------------------------------------------------------

	async def insert_pass(self, interaction_pass: InteractionPass) -> InteractionPass:
		row = await self._conn.fetchrow(
			"""
			INSERT INTO interaction_passes (id, kind, user_a, user_b, status, created_at)
			VALUES ($1, $2, $3, $4, $5, $6)
			RETURNING *
			""",
			interaction_pass.id,
			interaction_pass.kind.value,
			interaction_pass.user_a,
			interaction_pass.user_b,
			interaction_pass.status.value,
			interaction_pass.created_at,
		)
		return InteractionPass.from_record(row)

	async def get_pass(self, pass_id: str) -> Optional[InteractionPass]:
		row = await self._conn.fetchrow("SELECT * FROM interaction_passes WHERE id = $1", pass_id)
		return InteractionPass.from_record(row) if row else None

	async def set_pass_status(self, pass_id: str, status: PassStatus) -> InteractionPass:
		row = await self._conn.fetchrow(
			"UPDATE interaction_passes SET status = $2 WHERE id = $1 RETURNING *",
			pass_id,
			status.value,
		)
		if row is None:
			raise PassNotFound()
		return InteractionPass.from_record(row)

	async def list_pass_times_between(self, user_a: str, user_b: str, since: datetime) -> Sequence[datetime]:
		rows = await self._conn.fetch(
			f"SELECT created_at FROM interaction_passes WHERE {_PAIR_MATCH} AND created_at > $3 ORDER BY created_at",
			user_a,
			user_b,
			since,
		)
		return [row["created_at"] for row in rows]

	async def list_passes_for(self, user_id: str, limit: int) -> Sequence[InteractionPass]:
		rows = await self._conn.fetch(
			"""
			SELECT * FROM interaction_passes
			WHERE user_a = $1 OR user_b = $1
			ORDER BY created_at DESC
			LIMIT $2
			""",
			user_id,
			limit,
		)
		return [InteractionPass.from_record(row) for row in rows]

	async def list_unexpired_passes_before(self, before: datetime, limit: int) -> Sequence[InteractionPass]:
		rows = await self._conn.fetch(
			"""
			SELECT * FROM interaction_passes
			WHERE status <> 'expired' AND created_at < $1
			ORDER BY created_at
			LIMIT $2
			""",
			before,
			limit,
		)
		return [InteractionPass.from_record(row) for row in rows]

	# ratings ---------------------------------------------------------------

	async def insert_rating(self, rating: Rating) -> Rating:
		try:
			row = await self._conn.fetchrow(
				"""
				INSERT INTO ratings (id, pass_id, rater_id, ratee_id, score, revealed, created_at)
				VALUES ($1, $2, $3, $4, $5, FALSE, $6)
				RETURNING *
				""",
				rating.id,
				rating.pass_id,
				rating.rater_id,
				rating.ratee_id,
				rating.score,
				rating.created_at,
			)
		except pg_exc.UniqueViolationError as exc:
			raise DuplicateRating() from exc
		return Rating.from_record(row)

	async def get_rating(self, pass_id: str, rater_id: str) -> Optional[Rating]:
		row = await self._conn.fetchrow(
			"SELECT * FROM ratings WHERE pass_id = $1 AND rater_id = $2",
			pass_id,
			rater_id,
		)
		return Rating.from_record(row) if row else None

	async def mark_revealed(self, rating_ids: Sequence[str], at: datetime) -> Sequence[Rating]:
		rows = await self._conn.fetch(
			"""
			UPDATE ratings SET revealed = TRUE, revealed_at = $2
			WHERE id = ANY($1::uuid[]) AND NOT revealed
			RETURNING *
			""",
			list(rating_ids),
			at,
		)
		by_id = {str(row["id"]): Rating.from_record(row) for row in rows}
		return [by_id[rating_id] for rating_id in rating_ids if rating_id in by_id]

	async def delete_unrevealed_for_pass(self, pass_id: str) -> int:
		result = await self._conn.execute(
			"DELETE FROM ratings WHERE pass_id = $1 AND NOT revealed",
			pass_id,
		)
		return int(result.split()[-1])

	async def list_revealed_for(self, user_id: str, limit: int) -> Sequence[Rating]:
		rows = await self._conn.fetch(
			"""
			SELECT * FROM ratings
			WHERE ratee_id = $1 AND revealed
			ORDER BY revealed_at DESC
			LIMIT $2
			""",
			user_id,
			limit,
		)
		return [Rating.from_record(row) for row in rows]

	# outbox ----------------------------------------------------------------

	async def append_event(self, event: EngineEvent) -> None:
		await self._conn.execute(
			"""
			INSERT INTO event_outbox (id, event_type, recipient_id, payload, created_at)
			VALUES ($1, $2, $3, $4::jsonb, $5)
			""",
			event.id,
			event.type.value,
			event.recipient_id,
			json.dumps(event.payload),
			event.created_at,
		)
