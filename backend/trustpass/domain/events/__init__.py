"""Event feed exports."""

from .models import EngineEvent, EventType  # noqa: F401
