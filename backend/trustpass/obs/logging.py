"""Structured JSON logging with request context and field redaction."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from trustpass.settings import settings

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("obs_request_id", default=None)
_ROUTE: ContextVar[Optional[str]] = ContextVar("obs_route", default=None)
_USER_ID: ContextVar[Optional[str]] = ContextVar("obs_user_id", default=None)
_CLIENT_IP: ContextVar[Optional[str]] = ContextVar("obs_client_ip", default=None)

_CONTEXT_VARS: Dict[str, ContextVar[Optional[str]]] = {
	"request_id": _REQUEST_ID,
	"route": _ROUTE,
	"user_id": _USER_ID,
	"client_ip": _CLIENT_IP,
}

_LOGGER_NAME = "trustpass"

# Substring matches; coordinates are matched by exact key below so that
# keys like "latency_ms" survive.
_SENSITIVE_KEYWORDS = (
	"token",
	"secret",
	"authorization",
	"password",
	"latitude",
	"longitude",
	"location",
	"coords",
)
_SENSITIVE_KEYS = frozenset({"lat", "lon", "lng", "geo"})

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10

_RESERVED_ATTRS = frozenset(
	{
		"args",
		"msg",
		"name",
		"levelname",
		"levelno",
		"pathname",
		"filename",
		"module",
		"exc_info",
		"exc_text",
		"stack_info",
		"lineno",
		"funcName",
		"created",
		"msecs",
		"relativeCreated",
		"thread",
		"threadName",
		"process",
		"processName",
		"taskName",
		"message",
	}
)


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Bind request-scoped fields (request_id, route, user_id, client_ip)."""
	tokens: Dict[str, Token] = {}
	for key, value in fields.items():
		var = _CONTEXT_VARS.get(key)
		if var is None or value is None:
			continue
		tokens[key] = var.set(value)
	return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
	for key, token in tokens.items():
		_CONTEXT_VARS[key].reset(token)


def current_request_id() -> Optional[str]:
	return _REQUEST_ID.get()


def _is_sensitive(key: str) -> bool:
	lowered = key.lower()
	if lowered in _SENSITIVE_KEYS:
		return True
	return any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS)


def _sanitize_value(value: Any) -> Any:
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING_LENGTH else f"{value[:_MAX_STRING_LENGTH]}…"
	if isinstance(value, dict):
		result: Dict[str, Any] = {}
		for idx, (key, nested) in enumerate(value.items()):
			if idx >= _MAX_COLLECTION_ITEMS:
				result["…"] = f"+{len(value) - _MAX_COLLECTION_ITEMS} keys"
				break
			result[str(key)] = _sanitize_field(str(key), nested)
		return result
	if isinstance(value, (list, tuple, set)):
		items = [_sanitize_value(item) for item in list(value)[:_MAX_COLLECTION_ITEMS]]
		if len(value) > _MAX_COLLECTION_ITEMS:
			items.append("…")
		return items
	if isinstance(value, (int, float, bool)) or value is None:
		return value
	return str(value)


def _sanitize_field(key: str, value: Any) -> Any:
	if _is_sensitive(key):
		return "[redacted]"
	return _sanitize_value(value)


class JSONLogFormatter(logging.Formatter):
	"""Emit logs as single-line JSON objects."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, object] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for key, var in _CONTEXT_VARS.items():
			value = var.get()
			if value:
				payload["ip" if key == "client_ip" else key] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key in _RESERVED_ATTRS or key in payload:
				continue
			payload[key] = _sanitize_field(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Randomly sample info-level logs, keep everything else."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		if rate >= 1.0:
			return True
		return random.random() < rate


def configure_logging() -> logging.Logger:
	"""Configure root logger with JSON formatting and sampling."""
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
