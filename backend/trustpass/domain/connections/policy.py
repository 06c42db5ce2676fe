"""Guard checks for connection graph operations."""

from __future__ import annotations

from redis.exceptions import RedisError

from trustpass.domain.common.errors import InvalidState, TransientStoreError
from trustpass.domain.connections.exceptions import (
	AlreadyBlocked,
	ConnectionForbidden,
	ConnectionNotFound,
	ConnectionRateLimited,
	DuplicateConnection,
	SelfConnection,
)
from trustpass.domain.connections.models import Connection, ConnectionStatus
from trustpass.domain.identity.exceptions import UserNotFound
from trustpass.domain.store import Transaction
from trustpass.infra import rate_limit

REQUEST_WINDOW_SECONDS = 60


def guard_not_self(user_id: str, target_id: str) -> None:
	if str(user_id) == str(target_id):
		raise SelfConnection()


async def enforce_request_limit(user_id: str, *, per_minute: int) -> None:
	try:
		allowed = await rate_limit.allow(
			"connection:request", user_id, limit=per_minute, window_seconds=REQUEST_WINDOW_SECONDS
		)
	except RedisError as exc:
		raise TransientStoreError() from exc
	if not allowed:
		raise ConnectionRateLimited(retry_after_seconds=rate_limit.retry_after(REQUEST_WINDOW_SECONDS))


async def ensure_user_exists(tx: Transaction, user_id: str) -> None:
	if await tx.get_user(user_id) is None:
		raise UserNotFound()


async def ensure_not_blocked(tx: Transaction, user_a: str, user_b: str) -> None:
	if await tx.is_blocked_between(user_a, user_b):
		raise AlreadyBlocked()


async def ensure_no_open_connection(tx: Transaction, user_a: str, user_b: str) -> None:
	if await tx.find_open_connection(user_a, user_b) is not None:
		raise DuplicateConnection()


async def load_for_recipient(tx: Transaction, connection_id: str, acting_user_id: str) -> Connection:
	"""Load a connection the acting user may answer; only ``user_b`` answers a request."""
	connection = await tx.get_connection(connection_id)
	if connection is None:
		raise ConnectionNotFound()
	if connection.user_b != acting_user_id:
		raise ConnectionForbidden()
	return connection


def guard_pending(connection: Connection) -> None:
	if connection.status != ConnectionStatus.PENDING:
		raise InvalidState()
