"""Error taxonomy shared by every engine component.

Each error carries a machine-readable ``reason``. The HTTP layer maps the
family (validation, conflict, forbidden, not found, rate limited, transient)
to a status code; callers branch on ``reason``.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine failures."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class ValidationError(EngineError):
    """Malformed input, rejected before any write."""

    reason = "invalid"


class StateConflict(EngineError):
    """Definitive rejection given current state; re-fetch before acting again."""

    reason = "conflict"


class InvalidState(StateConflict):
    reason = "invalid_state"


class Forbidden(EngineError):
    reason = "forbidden"


class NotFound(EngineError):
    reason = "not_found"


class RateLimited(EngineError):
    """Quota exhausted; ``retry_after_seconds`` is set when derivable."""

    reason = "rate_limited"

    def __init__(self, reason: str | None = None, *, retry_after_seconds: int | None = None) -> None:
        super().__init__(reason)
        self.retry_after_seconds = retry_after_seconds


class TransientStoreError(EngineError):
    """Backing store unreachable or timed out. Safe to retry at the caller."""

    reason = "store_unavailable"
