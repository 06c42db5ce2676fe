"""Identity store operations: onboarding, profile, location snapshot and scans."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from trustpass.domain.common.pairs import user_key, utcnow
from trustpass.domain.identity import policy
from trustpass.domain.identity.exceptions import UserNotFound
from trustpass.domain.identity.models import User, default_avatar
from trustpass.domain.store import Store
from trustpass.infra.auth import AuthenticatedUser
from trustpass.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class IdentityService:
	"""Owns user records except the derived score fields."""

	def __init__(self, store: Store, *, clock: Callable[[], datetime] = utcnow) -> None:
		self._store = store
		self._clock = clock

	async def register_user(
		self,
		username: str,
		*,
		display_name: Optional[str] = None,
		avatar_uri: Optional[str] = None,
		user_id: Optional[str] = None,
	) -> User:
		handle = policy.guard_username(username)
		name = policy.guard_display_name(display_name, fallback=handle)
		user = User(
			id=user_id or str(uuid4()),
			username=handle,
			display_name=name or handle,
			avatar_uri=avatar_uri or default_avatar(handle),
			score=0.0,
			rating_count=0,
			created_at=self._clock(),
		)
		async with self._store.transaction() as tx:
			created = await tx.insert_user(user)
		obs_metrics.inc_user_registered()
		logger.info("user_registered", extra={"user_id": created.id})
		return created

	async def get_user(self, user_id: str) -> User:
		async with self._store.transaction() as tx:
			user = await tx.get_user(str(user_id))
		if user is None:
			raise UserNotFound()
		return user

	async def get_user_by_username(self, username: str) -> User:
		async with self._store.transaction() as tx:
			user = await tx.get_user_by_username(username.strip())
		if user is None:
			raise UserNotFound()
		return user

	async def update_profile(
		self,
		session: AuthenticatedUser,
		*,
		display_name: Optional[str] = None,
		avatar_uri: Optional[str] = None,
	) -> User:
		name = policy.guard_display_name(display_name)
		async with self._store.transaction(lock_keys=[user_key(session.id)]) as tx:
			user = await tx.update_profile(session.id, display_name=name, avatar_uri=avatar_uri)
		if user is None:
			raise UserNotFound()
		return user

	async def update_location(self, session: AuthenticatedUser, lat: float, lon: float) -> User:
		location = policy.guard_location(lat, lon)
		async with self._store.transaction(lock_keys=[user_key(session.id)]) as tx:
			user = await tx.update_location(session.id, lat=location.lat, lon=location.lon, at=self._clock())
		if user is None:
			raise UserNotFound()
		return user

	async def resolve_scanned_identifier(self, raw: str) -> User:
		"""Resolve a scanned QR payload to the user it names."""
		user_id = policy.parse_scan_payload(raw)
		return await self.get_user(user_id)
