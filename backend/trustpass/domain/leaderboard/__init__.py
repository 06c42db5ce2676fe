"""Leaderboard exports."""

from .models import LeaderboardRow  # noqa: F401
from .service import LeaderboardService  # noqa: F401
