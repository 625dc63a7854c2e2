"""Events API endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from helpinghands.api.deps import get_coordinator
from helpinghands.domain.events.coordinator import ParticipationCoordinator
from helpinghands.domain.events.models import Event
from helpinghands.domain.events.schemas import (
	EventCreateRequest,
	EventMutationResponse,
	EventPage,
	EventUpdateRequest,
)
from helpinghands.infra.identity import Identity, get_identity

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=EventPage)
async def list_events_endpoint(
	type: Optional[str] = Query(default=None),  # noqa: A002 (public query name)
	search: Optional[str] = Query(default=None),
	page: int = Query(default=1),
	limit: Optional[int] = Query(default=None),
	sort: Optional[str] = Query(default=None),
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> EventPage:
	return await coordinator.list_events(category=type, search=search, page=page, limit=limit, sort=sort)


@router.post("", response_model=EventMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
	payload: EventCreateRequest,
	identity: Identity = Depends(get_identity),
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> EventMutationResponse:
	event = await coordinator.create_event(payload.provided_fields(), identity)
	return EventMutationResponse(message="Event created successfully", event=event)


@router.get("/user/{user_id}", response_model=EventPage)
async def list_events_by_creator_endpoint(
	user_id: str,
	page: int = Query(default=1),
	limit: Optional[int] = Query(default=None),
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> EventPage:
	return await coordinator.list_events_by_creator(user_id, page=page, limit=limit)


@router.get("/{event_id}", response_model=Event)
async def get_event_endpoint(
	event_id: UUID,
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> Event:
	return await coordinator.get_event(event_id)


@router.put("/{event_id}", response_model=EventMutationResponse)
async def update_event_endpoint(
	event_id: UUID,
	payload: EventUpdateRequest,
	identity: Identity = Depends(get_identity),
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> EventMutationResponse:
	event = await coordinator.update_event(event_id, payload.provided_fields(), identity)
	return EventMutationResponse(message="Event updated successfully", event=event)


@router.post("/{event_id}/join", response_model=EventMutationResponse)
async def join_event_endpoint(
	event_id: UUID,
	identity: Identity = Depends(get_identity),
	coordinator: ParticipationCoordinator = Depends(get_coordinator),
) -> EventMutationResponse:
	event = await coordinator.join_event(event_id, identity)
	return EventMutationResponse(message="Successfully joined event", event=event)


__all__ = ["router"]
