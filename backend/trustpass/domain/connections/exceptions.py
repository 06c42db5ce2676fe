"""Connection graph errors."""

from __future__ import annotations

from trustpass.domain.common.errors import (
    Forbidden,
    NotFound,
    RateLimited,
    StateConflict,
    ValidationError,
)


class SelfConnection(ValidationError):
    reason = "self_connection"


class DuplicateConnection(StateConflict):
    reason = "duplicate_connection"


class AlreadyBlocked(StateConflict):
    reason = "already_blocked"


class ConnectionForbidden(Forbidden):
    reason = "forbidden"


class ConnectionNotFound(NotFound):
    reason = "connection_not_found"


class ConnectionRateLimited(RateLimited):
    """Raised when a requester exceeds the connection request quota."""

    reason = "connection_rate_limited"
