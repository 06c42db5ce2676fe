"""Leaderboard row model."""

from __future__ import annotations

from dataclasses import dataclass

from trustpass.domain.identity.models import User


@dataclass(slots=True)
class LeaderboardRow:
	rank: int
	user: User
