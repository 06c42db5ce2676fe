"""Nearby scan endpoint driven by client polling."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from trustpass.domain import container
from trustpass.domain.identity.schemas import PublicUser
from trustpass.domain.proximity.schemas import NearbyQuery, NearbyResponse, NearbyUser
from trustpass.infra.auth import AuthenticatedUser, get_current_user
from trustpass.settings import settings

router = APIRouter(prefix="/proximity", tags=["proximity"])


@router.post("/nearby", response_model=NearbyResponse)
async def nearby(
	payload: NearbyQuery,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> NearbyResponse:
	# the poll doubles as a heartbeat for the caller's own snapshot
	user = await container.get_identity_service().update_location(auth_user, payload.lat, payload.lon)
	evaluator = container.get_proximity_evaluator()
	matches = await evaluator.query_nearby(user.id, user.location)
	return NearbyResponse(
		items=[NearbyUser(user=PublicUser.from_user(match.user), distance_m=round(match.distance_m, 1)) for match in matches],
		threshold_m=evaluator.threshold_m,
		poll_after_seconds=settings.nearby_poll_hint_seconds,
	)
