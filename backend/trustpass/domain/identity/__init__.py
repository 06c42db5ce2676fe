"""Identity domain exports."""

from .models import Location, User  # noqa: F401
from .service import IdentityService  # noqa: F401
