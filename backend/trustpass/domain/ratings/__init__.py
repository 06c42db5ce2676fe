"""Rating & reveal exports."""

from .models import Rating, SubmissionResult  # noqa: F401
from .service import RatingEngine  # noqa: F401
