"""Postgres-backed Event Store."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence
from uuid import UUID

import asyncpg

from helpinghands.domain.events import models
from helpinghands.domain.events.exceptions import store_errors
from helpinghands.domain.events.policy import escape_like
from helpinghands.infra.postgres import get_pool

PoolProvider = Callable[[], Awaitable[asyncpg.pool.Pool]]

_UPDATABLE_COLUMNS = frozenset(
	{
		"title",
		"description",
		"category",
		"thumbnail",
		"location",
		"scheduled_at",
		"capacity",
		"is_active",
	}
)
_SORTABLE_COLUMNS = frozenset({"scheduled_at", "created_at", "title"})


def _row_to_event(row: Mapping[str, Any], participants: Sequence[Mapping[str, Any]]) -> models.Event:
	return models.Event(
		id=row["id"],
		title=row["title"],
		description=row["description"],
		category=row["category"],
		thumbnail=row["thumbnail"],
		location=row["location"],
		scheduled_at=row["scheduled_at"],
		creator=models.Creator(
			id=row["creator_id"],
			email=row["creator_email"],
			display_name=row["creator_display_name"],
			avatar_url=row["creator_avatar_url"],
		),
		capacity=row["capacity"],
		is_active=row["is_active"],
		participants=[
			models.Participant(
				user_id=p["user_id"],
				email=p["email"],
				display_name=p["display_name"],
				avatar_url=p["avatar_url"],
				joined_at=p["joined_at"],
			)
			for p in participants
		],
		created_at=row["created_at"],
		updated_at=row["updated_at"],
	)


class PostgresEventStore:
	"""Event documents and their participant rows."""

	def __init__(self, pool_provider: PoolProvider = get_pool) -> None:
		self._pool_provider = pool_provider

	async def _pool(self) -> asyncpg.pool.Pool:
		return await self._pool_provider()

	async def _with_participants(
		self,
		conn: asyncpg.Connection,
		rows: Sequence[Mapping[str, Any]],
	) -> list[models.Event]:
		if not rows:
			return []
		ids = [row["id"] for row in rows]
		participant_rows = await conn.fetch(
			"""
			SELECT event_id, user_id, email, display_name, avatar_url, joined_at
			FROM event_participants
			WHERE event_id = ANY($1::uuid[])
			ORDER BY joined_at ASC, user_id ASC
			""",
			ids,
		)
		grouped: dict[UUID, list[Mapping[str, Any]]] = defaultdict(list)
		for participant in participant_rows:
			grouped[participant["event_id"]].append(participant)
		return [_row_to_event(row, grouped.get(row["id"], [])) for row in rows]

	# --- Reads -------------------------------------------------------------

	async def get_by_id(self, event_id: UUID) -> Optional[models.Event]:
		async with store_errors("events.get"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow("SELECT * FROM events WHERE id = $1", event_id)
				if row is None:
					return None
				events = await self._with_participants(conn, [row])
		return events[0]

	async def get_many(self, event_ids: Sequence[UUID]) -> list[models.Event]:
		if not event_ids:
			return []
		async with store_errors("events.get_many"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"""
					SELECT * FROM events
					WHERE id = ANY($1::uuid[]) AND is_active
					ORDER BY scheduled_at ASC, created_at DESC, id ASC
					""",
					list(event_ids),
				)
				return await self._with_participants(conn, rows)

	async def find(
		self,
		event_filter: models.EventFilter,
		*,
		sort: str = "scheduled_at",
		offset: int = 0,
		limit: int = 12,
	) -> tuple[list[models.Event], int]:
		if sort not in _SORTABLE_COLUMNS:
			raise ValueError(f"unsupported sort column: {sort}")
		clauses: list[str] = []
		params: list[Any] = []
		if event_filter.active_only:
			clauses.append("is_active")
		if event_filter.category is not None:
			params.append(event_filter.category.value)
			clauses.append(f"category = ${len(params)}")
		if event_filter.creator_id:
			params.append(event_filter.creator_id)
			clauses.append(f"creator_id = ${len(params)}")
		if event_filter.search and event_filter.search.strip():
			params.append(f"%{escape_like(event_filter.search.strip())}%")
			idx = len(params)
			clauses.append(f"(title ILIKE ${idx} OR description ILIKE ${idx} OR location ILIKE ${idx})")
		where = " AND ".join(clauses) if clauses else "TRUE"
		order = [f"{sort} ASC"]
		if sort != "created_at":
			order.append("created_at DESC")
		order.append("id ASC")
		async with store_errors("events.find"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				total = await conn.fetchval(f"SELECT COUNT(*) FROM events WHERE {where}", *params)
				rows = await conn.fetch(
					f"""
					SELECT * FROM events
					WHERE {where}
					ORDER BY {", ".join(order)}
					OFFSET ${len(params) + 1} LIMIT ${len(params) + 2}
					""",
					*params,
					offset,
					limit,
				)
				events = await self._with_participants(conn, rows)
		return events, int(total or 0)

	async def list_ids_for_participant(self, user_id: str) -> list[UUID]:
		async with store_errors("events.list_ids_for_participant"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"""
					SELECT e.id
					FROM event_participants p
					JOIN events e ON e.id = p.event_id
					WHERE p.user_id = $1
					ORDER BY e.scheduled_at ASC, e.id ASC
					""",
					user_id,
				)
		return [row["id"] for row in rows]

	# --- Writes ------------------------------------------------------------

	async def create(self, event: models.Event) -> UUID:
		async with store_errors("events.create"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					INSERT INTO events (id, title, description, category, thumbnail, location, scheduled_at,
						creator_id, creator_email, creator_display_name, creator_avatar_url,
						capacity, participant_count, is_active, created_at, updated_at)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, 0, $13, $14, $15)
					""",
					event.id,
					event.title,
					event.description,
					event.category.value,
					event.thumbnail,
					event.location,
					event.scheduled_at,
					event.creator.id,
					event.creator.email,
					event.creator.display_name,
					event.creator.avatar_url,
					event.capacity,
					event.is_active,
					event.created_at,
					event.updated_at,
				)
		return event.id

	async def update(self, event_id: UUID, fields: Mapping[str, Any]) -> Optional[models.Event]:
		unknown = set(fields) - _UPDATABLE_COLUMNS
		if unknown:
			raise ValueError(f"unsupported event fields: {sorted(unknown)}")
		assignments: list[str] = []
		params: list[Any] = [event_id]
		for column, value in fields.items():
			if isinstance(value, models.EventCategory):
				value = value.value
			params.append(value)
			assignments.append(f"{column} = ${len(params)}")
		assignments.append("updated_at = NOW()")
		async with store_errors("events.update"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					f"UPDATE events SET {', '.join(assignments)} WHERE id = $1 RETURNING *",
					*params,
				)
				if row is None:
					return None
				events = await self._with_participants(conn, [row])
		return events[0]

	async def append_participant(self, event_id: UUID, participant: models.Participant) -> models.AppendResult:
		"""Add ``participant`` unless the event is missing, inactive, full or already joined.

		The event row is locked for the duration of the transaction so concurrent
		appends to the same event are applied one at a time.
		"""
		async with store_errors("events.append_participant"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				async with conn.transaction():
					row = await conn.fetchrow("SELECT * FROM events WHERE id = $1 FOR UPDATE", event_id)
					if row is None:
						return models.AppendResult(models.AppendOutcome.NOT_FOUND)
					if not row["is_active"]:
						return models.AppendResult(models.AppendOutcome.NOT_ACTIVE)
					exists = await conn.fetchval(
						"SELECT 1 FROM event_participants WHERE event_id = $1 AND user_id = $2",
						event_id,
						participant.user_id,
					)
					if exists:
						return models.AppendResult(models.AppendOutcome.ALREADY_MEMBER)
					capacity = row["capacity"]
					if capacity > 0 and row["participant_count"] >= capacity:
						return models.AppendResult(models.AppendOutcome.FULL)
					await conn.execute(
						"""
						INSERT INTO event_participants (event_id, user_id, email, display_name, avatar_url, joined_at)
						VALUES ($1, $2, $3, $4, $5, $6)
						""",
						event_id,
						participant.user_id,
						participant.email,
						participant.display_name,
						participant.avatar_url,
						participant.joined_at,
					)
					updated = await conn.fetchrow(
						"""
						UPDATE events
						SET participant_count = participant_count + 1, updated_at = NOW()
						WHERE id = $1
						RETURNING *
						""",
						event_id,
					)
					events = await self._with_participants(conn, [updated])
		return models.AppendResult(models.AppendOutcome.APPENDED, events[0])

	async def remove_participant(self, event_id: UUID, user_id: str) -> models.RemoveOutcome:
		async with store_errors("events.remove_participant"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				async with conn.transaction():
					row = await conn.fetchrow("SELECT id FROM events WHERE id = $1 FOR UPDATE", event_id)
					if row is None:
						return models.RemoveOutcome.NOT_FOUND
					removed = await conn.fetchval(
						"DELETE FROM event_participants WHERE event_id = $1 AND user_id = $2 RETURNING user_id",
						event_id,
						user_id,
					)
					if removed is None:
						return models.RemoveOutcome.ABSENT
					await conn.execute(
						"""
						UPDATE events
						SET participant_count = GREATEST(participant_count - 1, 0), updated_at = NOW()
						WHERE id = $1
						""",
						event_id,
					)
		return models.RemoveOutcome.REMOVED


__all__ = ["PostgresEventStore", "PoolProvider"]
