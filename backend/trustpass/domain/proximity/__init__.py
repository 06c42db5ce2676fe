"""Proximity evaluation exports."""

from .geo import haversine_m  # noqa: F401
from .models import NearbyMatch  # noqa: F401
from .service import ProximityEvaluator  # noqa: F401
