"""Storage contract for the reputation engine.

Every mutating engine operation runs inside one :meth:`Store.transaction`.
The caller names the lock keys it needs up front (``pair:<a>:<b>``,
``pass:<id>``, ``user:<id>``); implementations acquire them in sorted order
and hold them until commit. Any exception raised inside the block rolls the
transaction back.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, AsyncContextManager, Optional, Protocol, Sequence

if TYPE_CHECKING:  # pragma: no cover - type-only imports
	from trustpass.domain.connections.models import Block, Connection, ConnectionStatus
	from trustpass.domain.events.models import EngineEvent
	from trustpass.domain.identity.models import User
	from trustpass.domain.passes.models import InteractionPass, PassStatus
	from trustpass.domain.ratings.models import Rating


class Transaction(Protocol):
	"""Primitive reads and writes available inside a store transaction."""

	# users
	async def get_user(self, user_id: str) -> Optional[User]:
		...

	async def get_user_by_username(self, username: str) -> Optional[User]:
		...

	async def insert_user(self, user: User) -> User:
		"""Raises ``UsernameTaken`` on a case-insensitive collision."""
		...

	async def update_profile(self, user_id: str, *, display_name: Optional[str], avatar_uri: Optional[str]) -> Optional[User]:
		...

	async def update_location(self, user_id: str, *, lat: float, lon: float, at: datetime) -> Optional[User]:
		...

	async def recompute_score(self, user_id: str) -> User:
		"""Set score/rating_count from the user's revealed ratings as ratee."""
		...

	async def list_leaderboard(self, limit: int) -> Sequence[User]:
		...

	async def list_accepted_counterparts(self, user_id: str) -> Sequence[User]:
		...

	# connections and blocks
	async def get_connection(self, connection_id: str) -> Optional[Connection]:
		...

	async def find_open_connection(self, user_a: str, user_b: str) -> Optional[Connection]:
		"""Non-blocked connection for the unordered pair, if any."""
		...

	async def insert_connection(self, connection: Connection) -> Connection:
		"""Raises ``DuplicateConnection`` when the pair already has a non-blocked row."""
		...

	async def set_connection_status(self, connection_id: str, status: ConnectionStatus, at: datetime) -> Connection:
		...

	async def delete_connection(self, connection_id: str) -> None:
		...

	async def block_connections_between(self, user_a: str, user_b: str, at: datetime) -> int:
		...

	async def list_connections(self, user_id: str, status: ConnectionStatus) -> Sequence[Connection]:
		...

	async def list_pending_incoming(self, user_id: str) -> Sequence[Connection]:
		...

	async def latest_connection_between(self, user_a: str, user_b: str) -> Optional[Connection]:
		...

	async def insert_block(self, block: Block) -> bool:
		"""Insert the block; ``False`` when it already existed."""
		...

	async def is_blocked_between(self, user_a: str, user_b: str) -> bool:
		...

	# passes
	async def insert_pass(self, interaction_pass: InteractionPass) -> InteractionPass:
		...

	async def get_pass(self, pass_id: str) -> Optional[InteractionPass]:
		...

	async def set_pass_status(self, pass_id: str, status: PassStatus) -> InteractionPass:
		...

	async def list_pass_times_between(self, user_a: str, user_b: str, since: datetime) -> Sequence[datetime]:
		"""Creation times of passes of any kind for the unordered pair, oldest first."""
		...

	async def list_passes_for(self, user_id: str, limit: int) -> Sequence[InteractionPass]:
		...

	async def list_unexpired_passes_before(self, before: datetime, limit: int) -> Sequence[InteractionPass]:
		...

	# ratings
	async def insert_rating(self, rating: Rating) -> Rating:
		"""Raises ``DuplicateRating`` when ``(pass_id, rater_id)`` already exists."""
		...

	async def get_rating(self, pass_id: str, rater_id: str) -> Optional[Rating]:
		...

	async def mark_revealed(self, rating_ids: Sequence[str], at: datetime) -> Sequence[Rating]:
		...

	async def delete_unrevealed_for_pass(self, pass_id: str) -> int:
		...

	async def list_revealed_for(self, user_id: str, limit: int) -> Sequence[Rating]:
		...

	# outbox
	async def append_event(self, event: EngineEvent) -> None:
		...


class Store(Protocol):
	"""Unit-of-work factory plus outbox draining."""

	def transaction(self, *, lock_keys: Sequence[str] = ()) -> AsyncContextManager[Transaction]:
		...

	async def fetch_unpublished(self, limit: int) -> Sequence[EngineEvent]:
		...

	async def mark_published(self, event_ids: Sequence[str], at: datetime) -> None:
		...
