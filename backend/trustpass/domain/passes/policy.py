"""Guard checks for interaction pass issuance."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from trustpass.domain.common.errors import InvalidState
from trustpass.domain.connections.models import ConnectionStatus
from trustpass.domain.identity.exceptions import UserNotFound
from trustpass.domain.passes.exceptions import (
	Blocked,
	InvalidKind,
	NotConnected,
	PairRateLimited,
	PassForbidden,
	PassNotFound,
	SelfPass,
)
from trustpass.domain.passes.models import MANUAL_KINDS, InteractionPass, PassKind, PassStatus
from trustpass.domain.store import Transaction


def parse_manual_kind(raw) -> PassKind:
	"""Only meet/call/chat may be created by hand; GPS passes come from proximity."""
	try:
		kind = PassKind(raw)
	except ValueError as exc:
		raise InvalidKind() from exc
	if kind not in MANUAL_KINDS:
		raise InvalidKind()
	return kind


def guard_not_self(user_id: str, counterpart_id: str) -> None:
	if str(user_id) == str(counterpart_id):
		raise SelfPass()


async def ensure_counterpart(tx: Transaction, counterpart_id: str) -> None:
	if await tx.get_user(counterpart_id) is None:
		raise UserNotFound()


async def ensure_not_blocked(tx: Transaction, user_a: str, user_b: str) -> None:
	if await tx.is_blocked_between(user_a, user_b):
		raise Blocked()


async def ensure_connected(tx: Transaction, user_a: str, user_b: str) -> None:
	connection = await tx.find_open_connection(user_a, user_b)
	if connection is None or connection.status != ConnectionStatus.ACCEPTED:
		raise NotConnected()


def enforce_pair_cap(times: Sequence[datetime], *, cap: int, window: timedelta, now: datetime) -> None:
	"""Reject when ``cap`` passes already exist inside the trailing window.

	``times`` holds creation times inside the window, oldest first. The retry
	hint is when the oldest counted pass ages out.
	"""
	if len(times) < cap:
		return
	oldest = times[0]
	retry_after = max(1, int((oldest + window - now).total_seconds() + 0.999))
	raise PairRateLimited(retry_after_seconds=retry_after)


def load_for_participant(interaction_pass: InteractionPass | None, user_id: str) -> InteractionPass:
	if interaction_pass is None:
		raise PassNotFound()
	if not interaction_pass.involves(user_id):
		raise PassForbidden()
	return interaction_pass


def guard_confirmable(interaction_pass: InteractionPass, user_id: str) -> None:
	if interaction_pass.user_b != user_id:
		raise PassForbidden()
	if interaction_pass.status != PassStatus.PENDING:
		raise InvalidState()
