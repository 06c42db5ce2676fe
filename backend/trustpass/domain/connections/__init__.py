"""Connection graph exports."""

from .models import Block, Connection, ConnectionStatus  # noqa: F401
from .service import ConnectionService  # noqa: F401
