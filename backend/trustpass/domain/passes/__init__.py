"""Interaction pass exports."""

from .models import InteractionPass, PassKind, PassStatus  # noqa: F401
from .service import PassService  # noqa: F401
