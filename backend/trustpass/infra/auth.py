"""Authentication helpers for FastAPI endpoints.

A Bearer JWT is required outside development. In development the
``X-User-Id`` header is accepted so local tools can act as seeded users.
The resolved :class:`AuthenticatedUser` is the explicit session object the
domain services take for every mutating call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from trustpass.settings import settings
from trustpass.infra import jwt as jwt_helper


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	username: Optional[str] = None
	roles: Tuple[str, ...] = ()
	session_id: Optional[str] = None

	def has_role(self, role: str) -> bool:
		return role in self.roles


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	roles_claim = payload.get("roles")
	roles: Tuple[str, ...]
	if isinstance(roles_claim, (list, tuple)):
		roles = tuple(str(r).strip() for r in roles_claim if str(r).strip())
	elif isinstance(roles_claim, str):
		roles = tuple(part.strip() for part in roles_claim.split(",") if part.strip())
	else:
		roles = ()

	username = payload.get("username")
	session_id = payload.get("sid")
	return AuthenticatedUser(
		id=sub,
		username=str(username) if username is not None else None,
		roles=roles,
		session_id=str(session_id).strip() if session_id is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow a simple header. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id:
		try:
			return AuthenticatedUser(id=str(UUID(x_user_id.strip())))
		except ValueError:
			raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
