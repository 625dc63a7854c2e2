"""Per-user membership endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from helpinghands.api.deps import get_coordinator
from helpinghands.domain.events.coordinator import ParticipationCoordinator
from helpinghands.domain.events.schemas import JoinedEvents, MessageResponse, ReconcileResponse
from helpinghands.infra.identity import Identity, get_identity, require_same_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}/joined-events", response_model=JoinedEvents)
async def joined_events_endpoint(
	user_id: str,
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> JoinedEvents:
	return await coordinator.list_events_joined_by_user(user_id)


@router.delete("/{user_id}/events/{event_id}", response_model=MessageResponse)
async def leave_event_endpoint(
	user_id: str,
	event_id: UUID,
	identity: Identity = Depends(get_identity),
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> MessageResponse:
	require_same_user(identity, user_id)
	await coordinator.leave_event(event_id, user_id)
	return MessageResponse(message="Successfully left event")


@router.post("/{user_id}/joined-events/reconcile", response_model=ReconcileResponse)
async def reconcile_endpoint(
	user_id: str,
	identity: Identity = Depends(get_identity),
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> ReconcileResponse:
	require_same_user(identity, user_id)
	event_ids = await coordinator.reconcile_user(user_id)
	return ReconcileResponse(user_id=user_id, joined_event_ids=event_ids)


__all__ = ["router"]
