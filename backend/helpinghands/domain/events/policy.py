"""Input coercion, sort and pagination rules for event workflows."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from helpinghands.domain.events.exceptions import ValidationError
from helpinghands.domain.events.models import EventCategory

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 2000

MUTABLE_FIELDS = (
	"title",
	"description",
	"category",
	"thumbnail",
	"location",
	"scheduled_at",
	"capacity",
)

# legacy client field names
_FIELD_ALIASES = {
	"eventType": "category",
	"type": "category",
	"eventDate": "scheduled_at",
	"date": "scheduled_at",
	"maxParticipants": "capacity",
}

_SORT_COLUMNS = {
	"scheduled_at": "scheduled_at",
	"eventDate": "scheduled_at",
	"date": "scheduled_at",
	"created_at": "created_at",
	"createdAt": "created_at",
	"title": "title",
}
DEFAULT_SORT = "scheduled_at"


def normalize_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
	"""Map legacy aliases onto canonical names; canonical keys win."""
	normalized: dict[str, Any] = {}
	for key, value in fields.items():
		canonical = _FIELD_ALIASES.get(key)
		if canonical is not None:
			normalized.setdefault(canonical, value)
		else:
			normalized[key] = value
	return normalized


def require_text(value: Any, name: str, *, max_length: Optional[int] = None) -> str:
	if value is None or not isinstance(value, str):
		raise ValidationError(f"{name}_required")
	text = value.strip()
	if not text:
		raise ValidationError(f"{name}_required")
	if max_length is not None and len(text) > max_length:
		raise ValidationError(f"{name}_too_long")
	return text


def optional_text(value: Any, name: str) -> str:
	if value is None:
		return ""
	if not isinstance(value, str):
		raise ValidationError(f"invalid_{name}")
	return value.strip()


def coerce_category(value: Any) -> EventCategory:
	if isinstance(value, EventCategory):
		return value
	if value is None or (isinstance(value, str) and not value.strip()):
		raise ValidationError("category_required")
	try:
		return EventCategory(str(value).strip())
	except ValueError as exc:
		raise ValidationError("invalid_category") from exc


def coerce_datetime(value: Any) -> datetime:
	"""Accept a datetime or ISO-8601 string; naive values are taken as UTC."""
	if value is None or (isinstance(value, str) and not value.strip()):
		raise ValidationError("event_date_required")
	if isinstance(value, datetime):
		parsed = value
	elif isinstance(value, str):
		raw = value.strip()
		if raw.endswith("Z"):
			raw = raw[:-1] + "+00:00"
		try:
			parsed = datetime.fromisoformat(raw)
		except ValueError as exc:
			raise ValidationError("invalid_event_date") from exc
	else:
		raise ValidationError("invalid_event_date")
	if parsed.tzinfo is None:
		return parsed.replace(tzinfo=timezone.utc)
	try:
		return parsed.astimezone(timezone.utc)
	except OverflowError as exc:
		# offsets that push the instant past datetime.min or datetime.max
		raise ValidationError("invalid_event_date") from exc


def coerce_capacity(value: Any) -> int:
	"""Missing or blank capacity means unbounded (0)."""
	if value is None:
		return 0
	if isinstance(value, bool):
		raise ValidationError("invalid_capacity")
	if isinstance(value, int):
		capacity = value
	elif isinstance(value, float):
		if not value.is_integer():
			raise ValidationError("invalid_capacity")
		capacity = int(value)
	elif isinstance(value, str):
		raw = value.strip()
		if not raw:
			return 0
		try:
			capacity = int(raw)
		except ValueError as exc:
			raise ValidationError("invalid_capacity") from exc
	else:
		raise ValidationError("invalid_capacity")
	if capacity < 0:
		raise ValidationError("invalid_capacity")
	return capacity


def validate_creation(fields: Mapping[str, Any], *, now: datetime) -> dict[str, Any]:
	data = normalize_fields(fields)
	scheduled_at = coerce_datetime(data.get("scheduled_at"))
	values = {
		"title": require_text(data.get("title"), "title", max_length=TITLE_MAX_LENGTH),
		"description": require_text(
			data.get("description"), "description", max_length=DESCRIPTION_MAX_LENGTH
		),
		"category": coerce_category(data.get("category")),
		"location": require_text(data.get("location"), "location"),
		"thumbnail": optional_text(data.get("thumbnail"), "thumbnail"),
		"scheduled_at": scheduled_at,
		"capacity": coerce_capacity(data.get("capacity")),
	}
	if scheduled_at <= now:
		raise ValidationError("event_date_not_in_future")
	return values


def validate_update(fields: Mapping[str, Any]) -> dict[str, Any]:
	"""Coerce the allow-listed subset of ``fields``; unknown keys are dropped."""
	data = normalize_fields(fields)
	changes: dict[str, Any] = {}
	for name in MUTABLE_FIELDS:
		if name not in data:
			continue
		value = data[name]
		if name == "title":
			changes[name] = require_text(value, name, max_length=TITLE_MAX_LENGTH)
		elif name == "description":
			changes[name] = require_text(value, name, max_length=DESCRIPTION_MAX_LENGTH)
		elif name == "location":
			changes[name] = require_text(value, name)
		elif name == "thumbnail":
			changes[name] = optional_text(value, name)
		elif name == "category":
			changes[name] = coerce_category(value)
		elif name == "scheduled_at":
			changes[name] = coerce_datetime(value)
		elif name == "capacity":
			# null keeps the current capacity; 0 clears it
			if value is not None:
				changes[name] = coerce_capacity(value)
	return changes


def resolve_sort(sort: Optional[str]) -> str:
	if sort is None or not sort.strip():
		return DEFAULT_SORT
	column = _SORT_COLUMNS.get(sort.strip())
	if column is None:
		raise ValidationError("invalid_sort")
	return column


def page_window(page: int, limit: int, *, max_limit: int) -> tuple[int, int]:
	"""Return ``(offset, limit)`` for a 1-based page."""
	if page < 1:
		raise ValidationError("invalid_page")
	if limit < 1 or limit > max_limit:
		raise ValidationError("invalid_limit")
	return (page - 1) * limit, limit


def page_meta(total: int, page: int, limit: int) -> dict[str, Any]:
	total_pages = math.ceil(total / limit) if total else 0
	return {
		"total": total,
		"current_page": page,
		"total_pages": total_pages,
		"has_next": page < total_pages,
		"has_prev": page > 1,
	}


def escape_like(term: str) -> str:
	return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


__all__ = [
	"TITLE_MAX_LENGTH",
	"DESCRIPTION_MAX_LENGTH",
	"MUTABLE_FIELDS",
	"DEFAULT_SORT",
	"normalize_fields",
	"require_text",
	"optional_text",
	"coerce_category",
	"coerce_datetime",
	"coerce_capacity",
	"validate_creation",
	"validate_update",
	"resolve_sort",
	"page_window",
	"page_meta",
	"escape_like",
]
