"""Read side of revealed ratings."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from trustpass.domain import container
from trustpass.domain.ratings.schemas import ReceivedList, ReceivedRating
from trustpass.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter()


@router.get("/ratings/received", response_model=ReceivedList)
async def received_ratings(
	limit: int = Query(default=50, ge=1, le=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> ReceivedList:
	rows = await container.get_rating_engine().list_received_ratings(auth_user, limit=limit)
	return ReceivedList(items=[ReceivedRating.from_model(row) for row in rows])
