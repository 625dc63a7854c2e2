import asyncio
import sys
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from helpinghands.api.deps import build_profile_service, get_coordinator, get_profile_service
from helpinghands.domain.events import models
from helpinghands.domain.events.coordinator import ParticipationCoordinator
from helpinghands.domain.events.exceptions import ConflictError, StoreUnavailableError
from helpinghands.domain.events.repair import MembershipRepairQueue
from helpinghands.infra import postgres
from helpinghands.infra.identity import Identity
from helpinghands.main import app


def _now() -> datetime:
	return datetime.now(timezone.utc)


class InMemoryEventStore:
	"""Event store double with the same per-event serialization as the Postgres row lock."""

	def __init__(self) -> None:
		self.events: dict[UUID, models.Event] = {}
		self._locks: dict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)
		self.conflicts_remaining = 0
		self.append_calls = 0
		self.unavailable = False

	def _check_available(self) -> None:
		if self.unavailable:
			raise StoreUnavailableError()

	async def create(self, event: models.Event) -> UUID:
		self._check_available()
		self.events[event.id] = event.model_copy(deep=True)
		return event.id

	async def get_by_id(self, event_id: UUID) -> Optional[models.Event]:
		self._check_available()
		event = self.events.get(event_id)
		return event.model_copy(deep=True) if event else None

	async def get_many(self, event_ids) -> list[models.Event]:
		found = [self.events[i] for i in dict.fromkeys(event_ids) if i in self.events]
		active = [e for e in found if e.is_active]
		active.sort(key=lambda e: (e.scheduled_at, -e.created_at.timestamp(), str(e.id)))
		return [e.model_copy(deep=True) for e in active]

	async def find(self, event_filter: models.EventFilter, *, sort="scheduled_at", offset=0, limit=12):
		matches = list(self.events.values())
		if event_filter.active_only:
			matches = [e for e in matches if e.is_active]
		if event_filter.category is not None:
			matches = [e for e in matches if e.category == event_filter.category]
		if event_filter.creator_id:
			matches = [e for e in matches if e.creator.id == event_filter.creator_id]
		if event_filter.search and event_filter.search.strip():
			term = event_filter.search.strip().lower()
			matches = [
				e
				for e in matches
				if term in e.title.lower() or term in e.description.lower() or term in e.location.lower()
			]
		matches.sort(key=lambda e: (getattr(e, sort), -e.created_at.timestamp(), str(e.id)))
		page = matches[offset : offset + limit]
		return [e.model_copy(deep=True) for e in page], len(matches)

	async def update(self, event_id: UUID, fields) -> Optional[models.Event]:
		self._check_available()
		event = self.events.get(event_id)
		if event is None:
			return None
		updated = event.model_copy(update={**fields, "updated_at": _now()}, deep=True)
		self.events[event_id] = updated
		return updated.model_copy(deep=True)

	async def append_participant(self, event_id: UUID, participant: models.Participant) -> models.AppendResult:
		async with self._locks[event_id]:
			self.append_calls += 1
			self._check_available()
			if self.conflicts_remaining > 0:
				self.conflicts_remaining -= 1
				raise ConflictError("events.append_participant_conflict")
			event = self.events.get(event_id)
			if event is None:
				return models.AppendResult(models.AppendOutcome.NOT_FOUND)
			# let other joiners queue up on the lock
			await asyncio.sleep(0)
			if not event.is_active:
				return models.AppendResult(models.AppendOutcome.NOT_ACTIVE)
			if event.has_participant(participant.user_id):
				return models.AppendResult(models.AppendOutcome.ALREADY_MEMBER)
			if event.is_full:
				return models.AppendResult(models.AppendOutcome.FULL)
			updated = event.model_copy(
				update={"participants": [*event.participants, participant], "updated_at": _now()},
				deep=True,
			)
			self.events[event_id] = updated
			return models.AppendResult(models.AppendOutcome.APPENDED, updated.model_copy(deep=True))

	async def remove_participant(self, event_id: UUID, user_id: str) -> models.RemoveOutcome:
		async with self._locks[event_id]:
			self._check_available()
			event = self.events.get(event_id)
			if event is None:
				return models.RemoveOutcome.NOT_FOUND
			if not event.has_participant(user_id):
				return models.RemoveOutcome.ABSENT
			remaining = [p for p in event.participants if p.user_id != user_id]
			self.events[event_id] = event.model_copy(
				update={"participants": remaining, "updated_at": _now()},
				deep=True,
			)
			return models.RemoveOutcome.REMOVED

	async def list_ids_for_participant(self, user_id: str) -> list[UUID]:
		joined = [e for e in self.events.values() if e.has_participant(user_id)]
		joined.sort(key=lambda e: (e.scheduled_at, str(e.id)))
		return [e.id for e in joined]


class InMemoryUserStore:
	def __init__(self) -> None:
		self.profiles: dict[str, models.UserProfile] = {}
		self.fail_adds = 0
		self.fail_removes = 0

	def _ensure(self, user_id: str) -> models.UserProfile:
		profile = self.profiles.get(user_id)
		if profile is None:
			now = _now()
			profile = models.UserProfile(user_id=user_id, created_at=now, updated_at=now)
			self.profiles[user_id] = profile
		return profile

	async def upsert_profile(self, identity: Identity) -> models.UserProfile:
		profile = self._ensure(identity.id)
		profile.email = identity.email
		profile.display_name = identity.display_name
		if identity.avatar_url:
			profile.avatar_url = identity.avatar_url
		profile.updated_at = _now()
		return profile.model_copy(deep=True)

	async def get_profile(self, user_id: str) -> Optional[models.UserProfile]:
		profile = self.profiles.get(user_id)
		return profile.model_copy(deep=True) if profile else None

	async def get_joined_event_ids(self, user_id: str) -> list[UUID]:
		profile = self.profiles.get(user_id)
		return list(profile.joined_event_ids) if profile else []

	async def add_joined_event(self, user_id: str, event_id: UUID) -> None:
		if self.fail_adds > 0:
			self.fail_adds -= 1
			raise StoreUnavailableError()
		profile = self._ensure(user_id)
		if event_id not in profile.joined_event_ids:
			profile.joined_event_ids.append(event_id)

	async def remove_joined_event(self, user_id: str, event_id: UUID) -> None:
		if self.fail_removes > 0:
			self.fail_removes -= 1
			raise StoreUnavailableError()
		profile = self.profiles.get(user_id)
		if profile is not None and event_id in profile.joined_event_ids:
			profile.joined_event_ids.remove(event_id)

	async def replace_joined_events(self, user_id: str, event_ids) -> None:
		profile = self._ensure(user_id)
		profile.joined_event_ids = list(dict.fromkeys(event_ids))


class MutableClock:
	def __init__(self, now: Optional[datetime] = None) -> None:
		self.now = now or _now()

	def __call__(self) -> datetime:
		return self.now


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from helpinghands.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture
def event_store() -> InMemoryEventStore:
	return InMemoryEventStore()


@pytest.fixture
def user_store() -> InMemoryUserStore:
	return InMemoryUserStore()


@pytest.fixture
def clock() -> MutableClock:
	return MutableClock()


@pytest.fixture
def repair_queue(fake_redis) -> MembershipRepairQueue:
	return MembershipRepairQueue(fake_redis)


@pytest.fixture
def coordinator(event_store, user_store, repair_queue, clock) -> ParticipationCoordinator:
	return ParticipationCoordinator(
		event_store,
		user_store,
		repair_queue=repair_queue,
		max_join_attempts=3,
		retry_backoff_seconds=0,
		clock=clock,
	)


@pytest_asyncio.fixture
async def api_client(coordinator):
	profile_service = build_profile_service(coordinator)
	app.dependency_overrides[get_coordinator] = lambda: coordinator
	app.dependency_overrides[get_profile_service] = lambda: profile_service
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.dependency_overrides.clear()
