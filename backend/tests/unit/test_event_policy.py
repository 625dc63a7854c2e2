from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from helpinghands.domain.events import policy
from helpinghands.domain.events.exceptions import ValidationError
from helpinghands.domain.events.models import EventCategory


def test_normalize_fields_prefers_canonical_names():
	fields = policy.normalize_fields({"eventDate": "a", "scheduled_at": "b", "maxParticipants": 3})
	assert fields == {"scheduled_at": "b", "capacity": 3}


@pytest.mark.parametrize(
	"value,expected",
	[
		(None, 0),
		("", 0),
		("  12 ", 12),
		(4, 4),
		(5.0, 5),
	],
)
def test_coerce_capacity_accepts_non_negative_integers(value, expected):
	assert policy.coerce_capacity(value) == expected


@pytest.mark.parametrize("value", [-1, "-3", "ten", 2.5, True, [1]])
def test_coerce_capacity_rejects_malformed_values(value):
	with pytest.raises(ValidationError) as excinfo:
		policy.coerce_capacity(value)
	assert excinfo.value.detail == "invalid_capacity"


def test_coerce_datetime_handles_zulu_and_naive_values():
	zulu = policy.coerce_datetime("2030-05-01T10:00:00Z")
	naive = policy.coerce_datetime(datetime(2030, 5, 1, 10, 0))
	assert zulu == naive == datetime(2030, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_coerce_datetime_normalizes_offsets_to_utc():
	value = policy.coerce_datetime("2030-05-01T12:00:00+02:00")
	assert value == datetime(2030, 5, 1, 10, 0, tzinfo=timezone.utc)
	assert value.tzinfo == timezone.utc


@pytest.mark.parametrize("value", ["0001-01-01T00:00:00+05:00", "9999-12-31T23:59:59-05:00"])
def test_coerce_datetime_rejects_offsets_outside_the_datetime_range(value):
	with pytest.raises(ValidationError) as excinfo:
		policy.coerce_datetime(value)
	assert excinfo.value.detail == "invalid_event_date"


def test_coerce_category_accepts_enum_values_only():
	assert policy.coerce_category(" Healthcare ") is EventCategory.HEALTHCARE
	with pytest.raises(ValidationError):
		policy.coerce_category("cleanup")


def test_require_text_enforces_length():
	assert policy.require_text("  hi  ", "title", max_length=5) == "hi"
	with pytest.raises(ValidationError) as excinfo:
		policy.require_text("x" * 101, "title", max_length=policy.TITLE_MAX_LENGTH)
	assert excinfo.value.detail == "title_too_long"


def test_validate_update_drops_unknown_keys():
	changes = policy.validate_update({"title": " New ", "participants": [], "is_active": False})
	assert changes == {"title": "New"}


def test_validate_update_null_capacity_keeps_current_value():
	assert policy.validate_update({"capacity": None, "title": "t"}) == {"title": "t"}
	assert policy.validate_update({"maxParticipants": 0}) == {"capacity": 0}


def test_validate_update_rejects_blank_required_text():
	with pytest.raises(ValidationError):
		policy.validate_update({"location": "  "})


def test_validate_creation_requires_future_date():
	now = datetime(2030, 1, 1, tzinfo=timezone.utc)
	fields = {
		"title": "t",
		"description": "d",
		"category": "Other",
		"location": "l",
		"date": (now - timedelta(minutes=1)).isoformat(),
	}
	with pytest.raises(ValidationError) as excinfo:
		policy.validate_creation(fields, now=now)
	assert excinfo.value.detail == "event_date_not_in_future"


@pytest.mark.parametrize(
	"sort,column",
	[(None, "scheduled_at"), ("eventDate", "scheduled_at"), ("createdAt", "created_at"), ("title", "title")],
)
def test_resolve_sort_allow_list(sort, column):
	assert policy.resolve_sort(sort) == column


def test_resolve_sort_rejects_unknown_columns():
	with pytest.raises(ValidationError):
		policy.resolve_sort("id; DROP TABLE events")


@pytest.mark.parametrize(
	"total,page,limit,pages,has_next,has_prev",
	[
		(0, 1, 12, 0, False, False),
		(12, 1, 12, 1, False, False),
		(13, 1, 12, 2, True, False),
		(25, 3, 12, 3, False, True),
		(25, 4, 12, 3, False, True),
	],
)
def test_page_meta(total, page, limit, pages, has_next, has_prev):
	meta = policy.page_meta(total, page, limit)
	assert meta["total_pages"] == pages
	assert meta["has_next"] is has_next
	assert meta["has_prev"] is has_prev


def test_page_window_bounds():
	assert policy.page_window(3, 10, max_limit=100) == (20, 10)
	with pytest.raises(ValidationError):
		policy.page_window(1, 101, max_limit=100)


def test_escape_like_escapes_wildcards():
	assert policy.escape_like("50%_off\\") == "50\\%\\_off\\\\"
