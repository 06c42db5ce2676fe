"""Seeded identities for local development and tests.

There are no bypass logins: tools act as these users through the dev-only
``X-User-Id`` header or a token minted for their id.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from trustpass.domain.identity.models import User
from trustpass.domain.identity.service import IdentityService

DEFAULT_SEED: Tuple[Tuple[str, str, str], ...] = (
	("11111111-1111-4111-8111-111111111111", "alice", "Alice"),
	("22222222-2222-4222-8222-222222222222", "bob", "Bob"),
	("33333333-3333-4333-8333-333333333333", "carol", "Carol"),
	("44444444-4444-4444-8444-444444444444", "dave", "Dave"),
)


async def seed_users(
	identity: IdentityService,
	seed: Optional[Iterable[Tuple[str, str, str]]] = None,
) -> Dict[str, User]:
	"""Register each ``(id, username, display_name)`` and return users keyed by username."""
	created: Dict[str, User] = {}
	for user_id, username, display_name in seed or DEFAULT_SEED:
		user = await identity.register_user(username, display_name=display_name, user_id=user_id)
		created[user.username] = user
	return created
