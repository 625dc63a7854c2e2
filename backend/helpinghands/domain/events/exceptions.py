"""Typed failures for event participation."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
from asyncpg.exceptions import (
	CannotConnectNowError,
	DeadlockDetectedError,
	InterfaceError,
	PostgresConnectionError,
	SerializationError,
	TooManyConnectionsError,
	UniqueViolationError,
)
from fastapi import status


class ParticipationError(Exception):
	"""Base class for participation related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "participation_error"
	retryable: bool = False

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ValidationError(ParticipationError):
	"""Missing or malformed input; the caller must fix the request."""

	status_code = status.HTTP_400_BAD_REQUEST
	detail = "validation_error"


class NotFoundError(ParticipationError):
	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(ParticipationError):
	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class AlreadyJoinedError(ParticipationError):
	status_code = status.HTTP_409_CONFLICT
	detail = "already_joined"


class EventFullError(ParticipationError):
	status_code = status.HTTP_409_CONFLICT
	detail = "event_full"


class EventEndedError(ParticipationError):
	status_code = status.HTTP_400_BAD_REQUEST
	detail = "event_ended"


class ConflictError(ParticipationError):
	"""A concurrent write won the race; safe to retry."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"
	retryable = True


class StoreUnavailableError(ParticipationError):
	"""Transient infrastructure failure; safe to retry."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "store_unavailable"
	retryable = True


_CONFLICT_ERRORS = (SerializationError, DeadlockDetectedError, UniqueViolationError)
_UNAVAILABLE_ERRORS = (
	PostgresConnectionError,
	CannotConnectNowError,
	TooManyConnectionsError,
	InterfaceError,
	OSError,
	asyncio.TimeoutError,
)


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
	"""Translate asyncpg/network failures raised inside the block into typed errors."""
	try:
		yield
	except _CONFLICT_ERRORS as exc:
		raise ConflictError(f"{operation}_conflict") from exc
	except _UNAVAILABLE_ERRORS as exc:
		raise StoreUnavailableError() from exc
	except asyncpg.PostgresError as exc:
		if exc.sqlstate and exc.sqlstate.startswith("08"):
			raise StoreUnavailableError() from exc
		raise


__all__ = [
	"ParticipationError",
	"ValidationError",
	"NotFoundError",
	"ForbiddenError",
	"AlreadyJoinedError",
	"EventFullError",
	"EventEndedError",
	"ConflictError",
	"StoreUnavailableError",
	"store_errors",
]
