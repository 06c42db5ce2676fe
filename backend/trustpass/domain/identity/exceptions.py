"""Identity store errors."""

from __future__ import annotations

from trustpass.domain.common.errors import NotFound, StateConflict, ValidationError


class InvalidUsername(ValidationError):
    reason = "invalid_username"


class InvalidDisplayName(ValidationError):
    reason = "invalid_display_name"


class InvalidLocation(ValidationError):
    reason = "invalid_location"


class InvalidIdentifier(ValidationError):
    reason = "invalid_identifier"


class UsernameTaken(StateConflict):
    reason = "username_taken"


class UserNotFound(NotFound):
    reason = "user_not_found"
