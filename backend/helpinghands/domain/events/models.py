"""Domain models for events, participants and user profiles."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field


class EventCategory(str, Enum):
	CLEANUP = "Cleanup"
	PLANTATION = "Plantation"
	DONATION = "Donation"
	EDUCATION = "Education"
	HEALTHCARE = "Healthcare"
	OTHER = "Other"


class Creator(BaseModel):
	"""Snapshot of the creating user's identity."""

	id: str
	email: str
	display_name: str
	avatar_url: str = ""


class Participant(BaseModel):
	"""A user who joined an event, denormalized onto the event."""

	user_id: str
	email: str
	display_name: str
	avatar_url: str = ""
	joined_at: datetime

	model_config = ConfigDict(from_attributes=True)


class Event(BaseModel):
	"""An event document. The participant list is the source of truth for membership."""

	id: UUID
	title: str
	description: str
	category: EventCategory
	thumbnail: str = ""
	location: str
	scheduled_at: datetime
	creator: Creator
	capacity: int = 0
	is_active: bool = True
	participants: list[Participant] = Field(default_factory=list)
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@computed_field  # type: ignore[prop-decorator]
	@property
	def participant_count(self) -> int:
		return len(self.participants)

	@computed_field  # type: ignore[prop-decorator]
	@property
	def is_full(self) -> bool:
		return self.capacity > 0 and self.participant_count >= self.capacity

	def has_participant(self, user_id: str) -> bool:
		return any(p.user_id == user_id for p in self.participants)

	def has_started(self, now: datetime) -> bool:
		return self.scheduled_at <= now


class UserProfile(BaseModel):
	"""Profile synced from the identity provider plus the joined-events index."""

	user_id: str
	email: str = ""
	display_name: str = ""
	avatar_url: str = ""
	joined_event_ids: list[UUID] = Field(default_factory=list)
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


@dataclass(slots=True)
class EventFilter:
	category: Optional[EventCategory] = None
	search: Optional[str] = None
	creator_id: Optional[str] = None
	active_only: bool = True


class AppendOutcome(str, Enum):
	APPENDED = "appended"
	ALREADY_MEMBER = "already_member"
	FULL = "full"
	NOT_FOUND = "not_found"
	NOT_ACTIVE = "not_active"


@dataclass(slots=True)
class AppendResult:
	outcome: AppendOutcome
	event: Optional[Event] = None


class RemoveOutcome(str, Enum):
	REMOVED = "removed"
	ABSENT = "absent"
	NOT_FOUND = "not_found"
