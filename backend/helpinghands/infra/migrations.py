"""Apply versioned SQL migrations from ``infra/migrations``."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

_LOG = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "infra" / "migrations"


def migration_version(path: Path) -> str:
	return path.name.split("_", 1)[0]


async def apply_migrations(pool: asyncpg.Pool, directory: Path = MIGRATIONS_DIR) -> list[str]:
	"""Apply pending ``*.sql`` files in name order and return the versions applied."""
	paths = sorted(directory.glob("*.sql"))
	if not paths:
		raise RuntimeError(f"no migration files found in {directory}")
	applied_now: list[str] = []
	async with pool.acquire() as conn:
		await conn.execute(
			"""
			CREATE TABLE IF NOT EXISTS schema_migrations (
				version TEXT PRIMARY KEY,
				applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
			)
			"""
		)
		rows = await conn.fetch("SELECT version FROM schema_migrations")
		applied = {row["version"] for row in rows}
		for path in paths:
			version = migration_version(path)
			if version in applied:
				continue
			sql = path.read_text(encoding="utf-8")
			async with conn.transaction():
				await conn.execute(sql)
				await conn.execute(
					"""
					INSERT INTO schema_migrations (version)
					VALUES ($1)
					ON CONFLICT (version) DO UPDATE SET applied_at = NOW()
					""",
					version,
				)
			_LOG.info("migrations.applied", extra={"migration": path.name})
			applied_now.append(version)
	return applied_now


__all__ = ["MIGRATIONS_DIR", "apply_migrations", "migration_version"]
