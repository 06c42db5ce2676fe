"""Interaction pass and rating endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from trustpass.domain import container
from trustpass.domain.passes.schemas import ManualPassRequest, PassList, PassSummary, ProximityPassRequest
from trustpass.domain.ratings.schemas import OwnRating, RatingSubmitRequest, SubmissionResponse
from trustpass.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter()


@router.post("/passes", response_model=PassSummary, status_code=status.HTTP_201_CREATED)
async def create_manual_pass(
	payload: ManualPassRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PassSummary:
	created = await container.get_pass_service().create_manual_pass(auth_user, str(payload.counterpart_id), payload.kind)
	return PassSummary.from_model(created)


@router.post("/passes/proximity", response_model=PassSummary, status_code=status.HTTP_201_CREATED)
async def create_proximity_pass(
	payload: ProximityPassRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PassSummary:
	created = await container.get_pass_service().create_proximity_pass(auth_user, str(payload.counterpart_id))
	return PassSummary.from_model(created)


@router.get("/passes", response_model=PassList)
async def list_passes(
	limit: int = Query(default=50, ge=1, le=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PassList:
	rows = await container.get_pass_service().list_passes(auth_user, limit=limit)
	return PassList(items=[PassSummary.from_model(row) for row in rows])


@router.get("/passes/{pass_id}", response_model=PassSummary)
async def get_pass(
	pass_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PassSummary:
	return PassSummary.from_model(await container.get_pass_service().get_pass(auth_user, str(pass_id)))


@router.post("/passes/{pass_id}/confirm", response_model=PassSummary)
async def confirm_pass(
	pass_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PassSummary:
	return PassSummary.from_model(await container.get_pass_service().confirm_pass(auth_user, str(pass_id)))


@router.post("/passes/{pass_id}/ratings", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def submit_rating(
	pass_id: UUID,
	payload: RatingSubmitRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> SubmissionResponse:
	result = await container.get_rating_engine().submit_rating(auth_user, str(pass_id), str(payload.ratee_id), payload.score)
	return SubmissionResponse.from_result(result)


@router.get("/passes/{pass_id}/ratings/mine", response_model=Optional[OwnRating])
async def my_rating(
	pass_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Optional[OwnRating]:
	rating = await container.get_rating_engine().get_my_rating(auth_user, str(pass_id))
	return OwnRating.from_model(rating) if rating else None
