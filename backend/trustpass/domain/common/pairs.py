"""Helpers for unordered user pairs and lock keys."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Tuple


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def ordered_pair(user_a: str, user_b: str) -> Tuple[str, str]:
	a, b = str(user_a), str(user_b)
	return (a, b) if a <= b else (b, a)


def pair_key(user_a: str, user_b: str) -> str:
	low, high = ordered_pair(user_a, user_b)
	return f"pair:{low}:{high}"


def user_key(user_id: str) -> str:
	return f"user:{user_id}"


def pass_key(pass_id: str) -> str:
	return f"pass:{pass_id}"
