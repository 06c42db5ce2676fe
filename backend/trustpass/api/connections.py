"""REST API surface for connection requests and blocks."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from trustpass.domain import container
from trustpass.domain.connections.schemas import ConnectionRequest, ConnectionRow, ConnectionSummary, PairStatus
from trustpass.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter()


@router.post("/connections", response_model=ConnectionSummary, status_code=status.HTTP_201_CREATED)
async def request_connection(
	payload: ConnectionRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> ConnectionSummary:
	connection = await container.get_connection_service().request_connection(auth_user, str(payload.target_id))
	return ConnectionSummary.from_model(connection)


@router.post("/connections/{connection_id}/accept", response_model=ConnectionSummary)
async def accept_connection(
	connection_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> ConnectionSummary:
	connection = await container.get_connection_service().accept_connection(auth_user, str(connection_id))
	return ConnectionSummary.from_model(connection)


@router.post("/connections/{connection_id}/decline", status_code=status.HTTP_204_NO_CONTENT)
async def decline_connection(
	connection_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
	await container.get_connection_service().decline_connection(auth_user, str(connection_id))
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/connections", response_model=List[ConnectionRow])
async def list_connections(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[ConnectionRow]:
	views = await container.get_connection_service().list_connections(auth_user)
	return [ConnectionRow.from_view(view) for view in views]


@router.get("/connections/pending", response_model=List[ConnectionRow])
async def list_pending(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[ConnectionRow]:
	views = await container.get_connection_service().list_pending_requests(auth_user)
	return [ConnectionRow.from_view(view) for view in views]


@router.get("/connections/with/{user_id}", response_model=PairStatus)
async def connection_with(
	user_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PairStatus:
	connection = await container.get_connection_service().get_connection_between(auth_user, str(user_id))
	if connection is None:
		return PairStatus(user_id=user_id, status="none")
	return PairStatus(
		user_id=user_id,
		status=connection.status.value,
		connection=ConnectionSummary.from_model(connection),
	)


@router.post("/blocks/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def block_user(
	user_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
	await container.get_connection_service().block_user(auth_user, str(user_id))
	return Response(status_code=status.HTTP_204_NO_CONTENT)
