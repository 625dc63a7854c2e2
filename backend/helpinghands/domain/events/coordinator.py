"""Event participation workflows spanning the event and user stores.

The event's participant list is the record of truth. Every membership change
writes the event first, then mirrors the change into the user's joined-events
index. Index writes are idempotent set operations; when one fails the change
is logged, counted and queued for repair instead of failing the request.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence
from uuid import UUID, uuid4

from helpinghands.domain.events import models, policy
from helpinghands.domain.events.exceptions import (
	AlreadyJoinedError,
	ConflictError,
	EventEndedError,
	EventFullError,
	ForbiddenError,
	NotFoundError,
	ValidationError,
)
from helpinghands.domain.events.repair import MembershipRepairQueue
from helpinghands.domain.events.schemas import EventPage, JoinedEvents
from helpinghands.infra.identity import Identity
from helpinghands.obs import metrics as obs_metrics
from helpinghands.settings import settings

_LOG = logging.getLogger(__name__)


class EventStore(Protocol):
	async def create(self, event: models.Event) -> UUID: ...

	async def get_by_id(self, event_id: UUID) -> Optional[models.Event]: ...

	async def get_many(self, event_ids: Sequence[UUID]) -> list[models.Event]: ...

	async def find(
		self,
		event_filter: models.EventFilter,
		*,
		sort: str = ...,
		offset: int = ...,
		limit: int = ...,
	) -> tuple[list[models.Event], int]: ...

	async def update(self, event_id: UUID, fields: Mapping[str, Any]) -> Optional[models.Event]: ...

	async def append_participant(self, event_id: UUID, participant: models.Participant) -> models.AppendResult: ...

	async def remove_participant(self, event_id: UUID, user_id: str) -> models.RemoveOutcome: ...

	async def list_ids_for_participant(self, user_id: str) -> list[UUID]: ...


class UserStore(Protocol):
	async def upsert_profile(self, identity: Identity) -> models.UserProfile: ...

	async def get_profile(self, user_id: str) -> Optional[models.UserProfile]: ...

	async def get_joined_event_ids(self, user_id: str) -> list[UUID]: ...

	async def add_joined_event(self, user_id: str, event_id: UUID) -> None: ...

	async def remove_joined_event(self, user_id: str, event_id: UUID) -> None: ...

	async def replace_joined_events(self, user_id: str, event_ids: Sequence[UUID]) -> None: ...


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class ParticipationCoordinator:
	"""Create, update, join and leave events while keeping both membership views aligned."""

	def __init__(
		self,
		event_store: EventStore,
		user_store: UserStore,
		*,
		repair_queue: Optional[MembershipRepairQueue] = None,
		max_join_attempts: Optional[int] = None,
		retry_backoff_seconds: Optional[float] = None,
		clock: Callable[[], datetime] = _utcnow,
	) -> None:
		self.events = event_store
		self.users = user_store
		self.repair_queue = repair_queue
		self.max_join_attempts = max(
			1, settings.join_max_attempts if max_join_attempts is None else max_join_attempts
		)
		self.retry_backoff_seconds = (
			settings.join_retry_backoff_seconds if retry_backoff_seconds is None else retry_backoff_seconds
		)
		self._clock = clock

	# --- Event lifecycle ----------------------------------------------------

	async def create_event(self, fields: Mapping[str, Any], creator: Identity) -> models.Event:
		if not creator.id:
			raise ValidationError("creator_id_required")
		if not creator.email:
			raise ValidationError("creator_email_required")
		if not creator.display_name:
			raise ValidationError("creator_name_required")
		now = self._clock()
		values = policy.validate_creation(fields, now=now)
		event = models.Event(
			id=uuid4(),
			creator=models.Creator(
				id=creator.id,
				email=creator.email,
				display_name=creator.display_name,
				avatar_url=creator.avatar_url,
			),
			is_active=True,
			participants=[],
			created_at=now,
			updated_at=now,
			**values,
		)
		await self.events.create(event)
		obs_metrics.inc_event_created()
		_LOG.info(
			"events.created",
			extra={"event_id": str(event.id), "creator_id": creator.id, "category": event.category.value},
		)
		return event

	async def update_event(self, event_id: UUID, fields: Mapping[str, Any], requester: Identity) -> models.Event:
		event = await self._require_visible(event_id)
		if event.creator.id != requester.id:
			raise ForbiddenError("not_event_creator")
		changes = policy.validate_update(fields)
		if not changes:
			return event
		if "capacity" in changes and 0 < changes["capacity"] < event.participant_count:
			# existing members are kept; new joins are refused until seats free up
			_LOG.warning(
				"events.capacity_below_participants",
				extra={
					"event_id": str(event_id),
					"capacity": changes["capacity"],
					"participants": event.participant_count,
				},
			)
		updated = await self.events.update(event_id, changes)
		if updated is None:
			raise NotFoundError("event_not_found")
		obs_metrics.inc_event_updated()
		_LOG.info("events.updated", extra={"event_id": str(event_id), "fields": sorted(changes)})
		return updated

	# --- Membership ---------------------------------------------------------

	async def join_event(self, event_id: UUID, identity: Identity) -> models.Event:
		if not identity.is_complete():
			raise ValidationError("participant_identity_required")
		event = await self._require_visible(event_id)
		now = self._clock()
		if event.has_started(now):
			obs_metrics.inc_participation("join", "ended")
			raise EventEndedError("event_ended")
		if event.has_participant(identity.id):
			obs_metrics.inc_participation("join", "already_joined")
			raise AlreadyJoinedError("already_joined")
		if event.is_full:
			obs_metrics.inc_participation("join", "full")
			raise EventFullError("event_full")

		participant = models.Participant(
			user_id=identity.id,
			email=identity.email,
			display_name=identity.display_name,
			avatar_url=identity.avatar_url,
			joined_at=now,
		)
		result = await self._append_with_retry(event_id, participant)
		if result.outcome is models.AppendOutcome.ALREADY_MEMBER:
			obs_metrics.inc_participation("join", "already_joined")
			raise AlreadyJoinedError("already_joined")
		if result.outcome is models.AppendOutcome.FULL:
			obs_metrics.inc_participation("join", "full")
			raise EventFullError("event_full")
		if result.outcome in (models.AppendOutcome.NOT_FOUND, models.AppendOutcome.NOT_ACTIVE):
			obs_metrics.inc_participation("join", "not_found")
			raise NotFoundError("event_not_found")
		assert result.event is not None

		await self._update_user_index("add", identity.id, event_id)
		obs_metrics.inc_participation("join", "joined")
		_LOG.info("participation.joined", extra={"event_id": str(event_id), "user_id": identity.id})
		return result.event

	async def leave_event(self, event_id: UUID, user_id: str) -> None:
		outcome = await self.events.remove_participant(event_id, user_id)
		await self._update_user_index("remove", user_id, event_id)
		obs_metrics.inc_participation("leave", outcome.value)
		_LOG.info(
			"participation.left",
			extra={"event_id": str(event_id), "user_id": user_id, "outcome": outcome.value},
		)

	async def reconcile_user(self, user_id: str) -> list[UUID]:
		"""Rebuild the user's joined-events index from the participant lists."""
		event_ids = await self.events.list_ids_for_participant(user_id)
		previous = await self.users.get_joined_event_ids(user_id)
		if previous != event_ids:
			await self.users.replace_joined_events(user_id, event_ids)
			_LOG.info(
				"participation.reconciled",
				extra={"user_id": user_id, "before": len(previous), "after": len(event_ids)},
			)
		return event_ids

	# --- Queries ------------------------------------------------------------

	async def get_event(self, event_id: UUID) -> models.Event:
		return await self._require_visible(event_id)

	async def list_events(
		self,
		*,
		category: Any = None,
		search: Optional[str] = None,
		page: int = 1,
		limit: Optional[int] = None,
		sort: Optional[str] = None,
	) -> EventPage:
		event_filter = models.EventFilter(
			category=policy.coerce_category(category) if category else None,
			search=search or None,
		)
		return await self._page(event_filter, page=page, limit=limit, sort=policy.resolve_sort(sort))

	async def list_events_by_creator(
		self,
		user_id: str,
		*,
		page: int = 1,
		limit: Optional[int] = None,
	) -> EventPage:
		event_filter = models.EventFilter(creator_id=user_id)
		return await self._page(event_filter, page=page, limit=limit, sort=policy.DEFAULT_SORT)

	async def list_events_joined_by_user(self, user_id: str) -> JoinedEvents:
		event_ids = await self.users.get_joined_event_ids(user_id)
		if not event_ids:
			return JoinedEvents(events=[], total=0)
		events = await self.events.get_many(event_ids)
		return JoinedEvents(events=events, total=len(events))

	# --- Internals ----------------------------------------------------------

	async def _require_visible(self, event_id: UUID) -> models.Event:
		event = await self.events.get_by_id(event_id)
		if event is None or not event.is_active:
			raise NotFoundError("event_not_found")
		return event

	async def _page(
		self,
		event_filter: models.EventFilter,
		*,
		page: int,
		limit: Optional[int],
		sort: str,
	) -> EventPage:
		effective_limit = limit if limit is not None else settings.default_page_limit
		offset, effective_limit = policy.page_window(page, effective_limit, max_limit=settings.max_page_limit)
		events, total = await self.events.find(event_filter, sort=sort, offset=offset, limit=effective_limit)
		return EventPage(events=events, **policy.page_meta(total, page, effective_limit))

	async def _append_with_retry(self, event_id: UUID, participant: models.Participant) -> models.AppendResult:
		attempt = 1
		while True:
			try:
				return await self.events.append_participant(event_id, participant)
			except ConflictError as exc:
				if attempt >= self.max_join_attempts:
					obs_metrics.inc_participation("join", "conflict")
					_LOG.warning(
						"participation.join_conflict",
						extra={"event_id": str(event_id), "user_id": participant.user_id, "attempts": attempt},
					)
					raise ConflictError("join_conflict") from exc
				obs_metrics.inc_join_retry()
				if self.retry_backoff_seconds > 0:
					await asyncio.sleep(self.retry_backoff_seconds * attempt)
				attempt += 1

	async def _update_user_index(self, action: str, user_id: str, event_id: UUID) -> None:
		try:
			if action == "add":
				await self.users.add_joined_event(user_id, event_id)
			else:
				await self.users.remove_joined_event(user_id, event_id)
		except Exception:
			_LOG.exception(
				"participation.user_index_failed",
				extra={"action": action, "event_id": str(event_id), "user_id": user_id},
			)
			obs_metrics.inc_user_index_failure(action)
			await self._schedule_repair(action, user_id, event_id)

	async def _schedule_repair(self, action: str, user_id: str, event_id: UUID) -> None:
		if self.repair_queue is None:
			return
		try:
			await self.repair_queue.enqueue(action, user_id, event_id)
		except Exception:
			_LOG.exception(
				"participation.repair_enqueue_failed",
				extra={"action": action, "event_id": str(event_id), "user_id": user_id},
			)


__all__ = ["EventStore", "ParticipationCoordinator", "UserStore"]
