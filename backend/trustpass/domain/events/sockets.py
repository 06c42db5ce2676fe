"""Socket.IO namespace delivering engine events to each user's room."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import socketio
from fastapi import HTTPException

from trustpass.domain.events.models import EngineEvent
from trustpass.infra.auth import AuthenticatedUser, verify_access_jwt
from trustpass.obs import metrics as obs_metrics
from trustpass.settings import settings

NAMESPACE = "/reputation"

_namespace: "ReputationNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _authenticate(scope: dict, auth_payload: dict) -> AuthenticatedUser:
	token = auth_payload.get("token")
	if not token:
		header = _header(scope, "authorization") or ""
		if header.lower().startswith("bearer "):
			token = header[7:].strip()
	if token:
		try:
			return verify_access_jwt(token)
		except HTTPException as exc:
			raise ConnectionRefusedError("invalid_token") from exc
	user_id = auth_payload.get("userId") or _header(scope, "x-user-id")
	if settings.is_dev() and user_id:
		try:
			return AuthenticatedUser(id=str(UUID(str(user_id))))
		except ValueError as exc:
			raise ConnectionRefusedError("invalid_token") from exc
	raise ConnectionRefusedError("missing credentials")


class ReputationNamespace(socketio.AsyncNamespace):
	"""Namespace that keeps each client in their personal room."""

	def __init__(self) -> None:
		super().__init__(NAMESPACE)
		self._sessions: dict[str, AuthenticatedUser] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		try:
			user = _authenticate(scope, auth_payload)
		except ConnectionRefusedError:
			obs_metrics.socket_disconnected(self.namespace)
			raise
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("reputation:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		user = self._sessions.pop(sid, None)
		if user:
			await self.leave_room(sid, self.user_room(user.id))

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(ns: ReputationNamespace | None) -> None:
	global _namespace
	_namespace = ns


async def emit_event(event: EngineEvent) -> None:
	"""Push one event to its recipient's room; a no-op before the server is wired."""
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, event.type.value)
	await _namespace.emit(event.type.value, event.to_wire(), room=ReputationNamespace.user_room(event.recipient_id))
