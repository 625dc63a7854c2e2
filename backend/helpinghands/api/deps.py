"""Service wiring shared by the API routers."""

from __future__ import annotations

from fastapi import Request

from helpinghands.domain.events.coordinator import ParticipationCoordinator
from helpinghands.domain.events.event_store import PostgresEventStore
from helpinghands.domain.events.profiles import ProfileService
from helpinghands.domain.events.repair import MembershipRepairQueue
from helpinghands.domain.events.user_store import PostgresUserStore


def build_coordinator() -> ParticipationCoordinator:
	return ParticipationCoordinator(
		PostgresEventStore(),
		PostgresUserStore(),
		repair_queue=MembershipRepairQueue(),
	)


def build_profile_service(coordinator: ParticipationCoordinator) -> ProfileService:
	return ProfileService(coordinator.users, coordinator.events)


def get_coordinator(request: Request) -> ParticipationCoordinator:
	state = request.app.state
	coordinator = getattr(state, "coordinator", None)
	if coordinator is None:
		coordinator = build_coordinator()
		state.coordinator = coordinator
	return coordinator


def get_profile_service(request: Request) -> ProfileService:
	state = request.app.state
	service = getattr(state, "profile_service", None)
	if service is None:
		service = build_profile_service(get_coordinator(request))
		state.profile_service = service
	return service


__all__ = [
	"build_coordinator",
	"build_profile_service",
	"get_coordinator",
	"get_profile_service",
]
