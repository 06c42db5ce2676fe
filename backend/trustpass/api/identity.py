"""Identity endpoints: onboarding, profile, location snapshot and QR scans."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from trustpass.domain import container
from trustpass.domain.identity.schemas import (
	LocationUpdateRequest,
	ProfileUpdateRequest,
	PublicUser,
	RegisterRequest,
	RegisterResponse,
	ScanResolveRequest,
	SelfUser,
)
from trustpass.infra import jwt as jwt_helper
from trustpass.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter()


@router.post("/users", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest) -> RegisterResponse:
	user = await container.get_identity_service().register_user(
		payload.username,
		display_name=payload.display_name,
		avatar_uri=payload.avatar_uri,
	)
	token = jwt_helper.encode_access({"sub": user.id, "username": user.username})
	return RegisterResponse(user=SelfUser.from_user(user), access_token=token)


# /users/me must be registered before /users/{user_id}
@router.get("/users/me", response_model=SelfUser)
async def read_me(auth_user: AuthenticatedUser = Depends(get_current_user)) -> SelfUser:
	user = await container.get_identity_service().get_user(auth_user.id)
	return SelfUser.from_user(user)


@router.patch("/users/me", response_model=SelfUser)
async def update_me(
	payload: ProfileUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> SelfUser:
	user = await container.get_identity_service().update_profile(
		auth_user,
		display_name=payload.display_name,
		avatar_uri=payload.avatar_uri,
	)
	return SelfUser.from_user(user)


@router.post("/users/me/location", response_model=SelfUser)
async def update_my_location(
	payload: LocationUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> SelfUser:
	user = await container.get_identity_service().update_location(auth_user, payload.lat, payload.lon)
	return SelfUser.from_user(user)


@router.get("/users/{user_id}", response_model=PublicUser)
async def read_user(
	user_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PublicUser:
	user = await container.get_identity_service().get_user(str(user_id))
	return PublicUser.from_user(user)


@router.post("/scan/resolve", response_model=PublicUser)
async def resolve_scan(
	payload: ScanResolveRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PublicUser:
	user = await container.get_identity_service().resolve_scanned_identifier(payload.payload)
	return PublicUser.from_user(user)
