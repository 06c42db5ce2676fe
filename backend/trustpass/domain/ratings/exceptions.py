"""Rating & reveal errors."""

from __future__ import annotations

from trustpass.domain.common.errors import StateConflict, ValidationError


class InvalidScore(ValidationError):
    reason = "invalid_score"


class InvalidPass(ValidationError):
    """Pass is missing, expired, or does not join exactly the rater and ratee."""

    reason = "invalid_pass"


class DuplicateRating(StateConflict):
    reason = "duplicate_rating"
