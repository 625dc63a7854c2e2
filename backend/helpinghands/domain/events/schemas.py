"""Pydantic schemas for the events API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from helpinghands.domain.events.models import Event, UserProfile

# loosely typed; ``policy`` coerces and reports the detail codes
_DateInput = Optional[Union[datetime, str]]
_CapacityInput = Optional[Union[int, str]]


class EventWriteRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	title: Optional[str] = None
	description: Optional[str] = None
	category: Optional[str] = Field(
		default=None, validation_alias=AliasChoices("category", "eventType", "type")
	)
	thumbnail: Optional[str] = None
	location: Optional[str] = None
	scheduled_at: _DateInput = Field(
		default=None, validation_alias=AliasChoices("scheduled_at", "eventDate", "date")
	)
	capacity: _CapacityInput = Field(
		default=None, validation_alias=AliasChoices("capacity", "maxParticipants")
	)

	def provided_fields(self) -> dict[str, Any]:
		return self.model_dump(exclude_unset=True)


class EventCreateRequest(EventWriteRequest):
	pass


class EventUpdateRequest(EventWriteRequest):
	pass


class EventMutationResponse(BaseModel):
	message: str
	event: Event


class MessageResponse(BaseModel):
	message: str


class EventPage(BaseModel):
	events: List[Event]
	total: int
	current_page: int
	total_pages: int
	has_next: bool
	has_prev: bool


class JoinedEvents(BaseModel):
	events: List[Event]
	total: int


class JoinedEventSummary(BaseModel):
	id: UUID
	title: str
	scheduled_at: datetime
	location: str


class ProfileResponse(BaseModel):
	user: UserProfile
	joined_events: List[JoinedEventSummary] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
	user_id: str
	joined_event_ids: List[UUID]
