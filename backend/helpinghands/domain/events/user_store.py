"""Postgres-backed User Store holding profiles and the joined-events index."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence
from uuid import UUID

import asyncpg

from helpinghands.domain.events import models
from helpinghands.domain.events.event_store import PoolProvider
from helpinghands.domain.events.exceptions import store_errors
from helpinghands.infra.identity import Identity
from helpinghands.infra.postgres import get_pool


def _row_to_profile(row: Mapping[str, Any]) -> models.UserProfile:
	return models.UserProfile(
		user_id=row["user_id"],
		email=row["email"],
		display_name=row["display_name"],
		avatar_url=row["avatar_url"],
		joined_event_ids=list(row["joined_event_ids"] or []),
		created_at=row["created_at"],
		updated_at=row["updated_at"],
	)


def _dedupe(ids: Sequence[UUID]) -> list[UUID]:
	seen: set[UUID] = set()
	ordered: list[UUID] = []
	for event_id in ids:
		if event_id not in seen:
			seen.add(event_id)
			ordered.append(event_id)
	return ordered


class PostgresUserStore:
	def __init__(self, pool_provider: PoolProvider = get_pool) -> None:
		self._pool_provider = pool_provider

	async def _pool(self) -> asyncpg.pool.Pool:
		return await self._pool_provider()

	async def upsert_profile(self, identity: Identity) -> models.UserProfile:
		async with store_errors("users.upsert_profile"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					INSERT INTO user_profiles (user_id, email, display_name, avatar_url)
					VALUES ($1, $2, $3, $4)
					ON CONFLICT (user_id) DO UPDATE SET
						email = EXCLUDED.email,
						display_name = EXCLUDED.display_name,
						avatar_url = COALESCE(NULLIF(EXCLUDED.avatar_url, ''), user_profiles.avatar_url),
						updated_at = NOW()
					RETURNING *
					""",
					identity.id,
					identity.email,
					identity.display_name,
					identity.avatar_url,
				)
		return _row_to_profile(row)

	async def get_profile(self, user_id: str) -> Optional[models.UserProfile]:
		async with store_errors("users.get_profile"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				row = await conn.fetchrow("SELECT * FROM user_profiles WHERE user_id = $1", user_id)
		return _row_to_profile(row) if row else None

	async def get_joined_event_ids(self, user_id: str) -> list[UUID]:
		async with store_errors("users.get_joined_event_ids"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				ids = await conn.fetchval(
					"SELECT joined_event_ids FROM user_profiles WHERE user_id = $1",
					user_id,
				)
		return list(ids or [])

	async def add_joined_event(self, user_id: str, event_id: UUID) -> None:
		"""Set-add; creates a bare profile row when the user has none yet."""
		async with store_errors("users.add_joined_event"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					INSERT INTO user_profiles (user_id, joined_event_ids)
					VALUES ($1, ARRAY[$2::uuid])
					ON CONFLICT (user_id) DO UPDATE SET
						joined_event_ids = CASE
							WHEN $2::uuid = ANY(user_profiles.joined_event_ids) THEN user_profiles.joined_event_ids
							ELSE array_append(user_profiles.joined_event_ids, $2::uuid)
						END,
						updated_at = NOW()
					""",
					user_id,
					event_id,
				)

	async def remove_joined_event(self, user_id: str, event_id: UUID) -> None:
		async with store_errors("users.remove_joined_event"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					UPDATE user_profiles
					SET joined_event_ids = array_remove(joined_event_ids, $2::uuid), updated_at = NOW()
					WHERE user_id = $1 AND $2::uuid = ANY(joined_event_ids)
					""",
					user_id,
					event_id,
				)

	async def replace_joined_events(self, user_id: str, event_ids: Sequence[UUID]) -> None:
		async with store_errors("users.replace_joined_events"):
			pool = await self._pool()
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					INSERT INTO user_profiles (user_id, joined_event_ids)
					VALUES ($1, $2::uuid[])
					ON CONFLICT (user_id) DO UPDATE SET
						joined_event_ids = EXCLUDED.joined_event_ids,
						updated_at = NOW()
					""",
					user_id,
					_dedupe(event_ids),
				)


__all__ = ["PostgresUserStore"]
