from __future__ import annotations

import asyncio
import sys

import asyncpg

from helpinghands.infra.migrations import MIGRATIONS_DIR, apply_migrations
from helpinghands.settings import settings


async def wait_for_db(retries: int = 30, delay: int = 2) -> asyncpg.Pool:
    for i in range(retries):
        try:
            return await asyncpg.create_pool(dsn=settings.postgres_url, min_size=1, max_size=1)
        except (OSError, asyncpg.CannotConnectNowError) as exc:
            print(f"Database starting up... waiting {delay}s ({i+1}/{retries}): {exc}")
            await asyncio.sleep(delay)
    raise SystemExit("Could not connect to database after multiple retries")


async def main() -> None:
    pool = await wait_for_db()
    try:
        applied = await apply_migrations(pool, MIGRATIONS_DIR)
    finally:
        await pool.close()
    if applied:
        for version in applied:
            print(f"Applied {version}")
    else:
        print("Schema up to date")


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())
