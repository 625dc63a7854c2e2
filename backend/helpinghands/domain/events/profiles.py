"""Profile sync and lookup for identities issued upstream."""

from __future__ import annotations

import logging

from helpinghands.domain.events.coordinator import EventStore, UserStore
from helpinghands.domain.events.exceptions import NotFoundError, ValidationError
from helpinghands.domain.events.models import UserProfile
from helpinghands.domain.events.schemas import JoinedEventSummary, ProfileResponse
from helpinghands.infra.identity import Identity

_LOG = logging.getLogger(__name__)


class ProfileService:
	def __init__(self, user_store: UserStore, event_store: EventStore) -> None:
		self.users = user_store
		self.events = event_store

	async def sync_user(self, identity: Identity) -> UserProfile:
		if not identity.is_complete():
			raise ValidationError("identity_fields_required")
		profile = await self.users.upsert_profile(identity)
		_LOG.info("profiles.synced", extra={"user_id": identity.id})
		return profile

	async def get_profile(self, user_id: str) -> ProfileResponse:
		profile = await self.users.get_profile(user_id)
		if profile is None:
			raise NotFoundError("user_not_found")
		events = await self.events.get_many(profile.joined_event_ids)
		summaries = [
			JoinedEventSummary(id=e.id, title=e.title, scheduled_at=e.scheduled_at, location=e.location)
			for e in events
		]
		return ProfileResponse(user=profile, joined_events=summaries)


__all__ = ["ProfileService"]
