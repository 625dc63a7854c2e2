"""Dependency probes behind ``/api/health``."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable

from helpinghands.infra import postgres
from helpinghands.infra.redis import redis_client
from helpinghands.obs import metrics
from helpinghands.settings import settings

_LOG = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[dict[str, Any]]]


async def _timed(name: str, check: Callable[[], Awaitable[Any]], timeout: float) -> dict[str, Any]:
	started = perf_counter()
	try:
		await asyncio.wait_for(check(), timeout=timeout)
	except Exception as exc:
		_LOG.warning("health.probe_failed", extra={"probe": name, "error": repr(exc)})
		return {"ok": False, "error": type(exc).__name__}
	return {"ok": True, "latency_ms": round((perf_counter() - started) * 1000, 2)}


def _latency_seconds(result: dict[str, Any]) -> float | None:
	latency_ms = result.get("latency_ms")
	return latency_ms / 1000 if latency_ms is not None else None


async def check_redis(timeout: float = 0.2) -> dict[str, Any]:
	result = await _timed("redis", redis_client.ping, timeout)
	metrics.mark_redis(result["ok"], latency_seconds=_latency_seconds(result))
	return result


async def _select_one() -> None:
	pool = await postgres.get_pool()
	async with pool.acquire() as conn:
		await conn.execute("SELECT 1")


async def check_postgres(timeout: float = 0.5) -> dict[str, Any]:
	result = await _timed("postgres", _select_one, timeout)
	metrics.mark_postgres(result["ok"], latency_seconds=_latency_seconds(result))
	return result


async def check_migrations(min_version: str | None = None) -> dict[str, Any]:
	required = min_version or settings.health_min_migration
	try:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			version = await conn.fetchval("SELECT max(version) FROM schema_migrations")
	except Exception as exc:
		return {"ok": False, "error": type(exc).__name__, "required": required}
	if version is None:
		return {"ok": False, "error": "no_migrations", "required": required}
	return {"ok": str(version) >= required, "version": str(version), "required": required}


async def liveness() -> dict[str, str]:
	return {"status": "ok"}


async def readiness() -> tuple[int, dict[str, Any]]:
	"""Run every probe; 200 only when all of them pass."""
	probes: dict[str, Probe] = {
		"postgres": check_postgres,
		"redis": check_redis,
		"migrations": check_migrations,
	}
	results = await asyncio.gather(*(probe() for probe in probes.values()))
	checks = dict(zip(probes, results))
	ok = all(result["ok"] for result in checks.values())
	return (200 if ok else 503), {"status": "ok" if ok else "degraded", "checks": checks}


__all__ = ["check_migrations", "check_postgres", "check_redis", "liveness", "readiness"]
