"""Interaction pass errors."""

from __future__ import annotations

from trustpass.domain.common.errors import Forbidden, NotFound, RateLimited, ValidationError


class InvalidKind(ValidationError):
    reason = "invalid_kind"


class Blocked(Forbidden):
    reason = "blocked"


class NotConnected(Forbidden):
    reason = "not_connected"


class NotNearby(Forbidden):
    reason = "not_nearby"


class PassForbidden(Forbidden):
    reason = "forbidden"


class PassNotFound(NotFound):
    reason = "pass_not_found"


class PairRateLimited(RateLimited):
    """Raised when a pair exhausts its proximity pass cap inside the window."""

    reason = "pair_rate_limited"


class SelfPass(ValidationError):
    reason = "self_pass"
