import pytest
from fastapi import HTTPException

from trustpass.infra import jwt as jwt_helper
from trustpass.infra.auth import get_current_user, verify_access_jwt
from trustpass.settings import settings


def test_verify_access_jwt_roundtrip():
    token = jwt_helper.encode_access({"sub": "11111111-1111-4111-8111-111111111111", "username": "alice"})
    user = verify_access_jwt(token)
    assert user.id == "11111111-1111-4111-8111-111111111111"
    assert user.username == "alice"


def test_expired_token_rejected():
    token = jwt_helper.encode_access({"sub": "abc"}, ttl_seconds=-60)
    with pytest.raises(HTTPException) as exc_info:
        verify_access_jwt(token)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_dev_header_ignored_outside_dev(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    with pytest.raises(HTTPException):
        await get_current_user(x_user_id="11111111-1111-4111-8111-111111111111", credentials=None)


@pytest.mark.asyncio
async def test_dev_header_accepted_in_dev():
    user = await get_current_user(x_user_id="11111111-1111-4111-8111-111111111111", credentials=None)
    assert user.id == "11111111-1111-4111-8111-111111111111"
