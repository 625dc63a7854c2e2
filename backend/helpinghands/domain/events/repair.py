"""Redis-backed queue of joined-events index writes that need replaying."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from helpinghands.infra.redis import redis_client

_LOG = logging.getLogger(__name__)

QUEUE_KEY = "membership:repair"
ACTIONS = ("add", "remove")


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class RepairTask:
	action: str
	user_id: str
	event_id: UUID
	attempts: int = 0
	enqueued_at: str = field(default_factory=_now_iso)

	def to_json(self) -> str:
		payload = asdict(self)
		payload["event_id"] = str(self.event_id)
		return json.dumps(payload, separators=(",", ":"))

	@classmethod
	def from_json(cls, raw: str) -> "RepairTask":
		data = json.loads(raw)
		action = data["action"]
		if action not in ACTIONS:
			raise ValueError(f"unknown repair action: {action}")
		return cls(
			action=action,
			user_id=str(data["user_id"]),
			event_id=UUID(str(data["event_id"])),
			attempts=int(data.get("attempts", 0)),
			enqueued_at=str(data.get("enqueued_at") or _now_iso()),
		)


class MembershipRepairQueue:
	"""FIFO list of pending user-index writes."""

	def __init__(self, client=None, *, key: str = QUEUE_KEY) -> None:
		self._client = client if client is not None else redis_client
		self.key = key

	async def enqueue(self, action: str, user_id: str, event_id: UUID) -> RepairTask:
		if action not in ACTIONS:
			raise ValueError(f"unknown repair action: {action}")
		task = RepairTask(action=action, user_id=user_id, event_id=event_id)
		await self._client.rpush(self.key, task.to_json())
		return task

	async def requeue(self, task: RepairTask) -> None:
		await self._client.rpush(self.key, task.to_json())

	async def pop_batch(self, limit: int) -> list[RepairTask]:
		if limit <= 0:
			return []
		raw_items: Optional[list[str]] = await self._client.lpop(self.key, limit)
		tasks: list[RepairTask] = []
		for raw in raw_items or []:
			try:
				tasks.append(RepairTask.from_json(raw))
			except (ValueError, KeyError, TypeError):
				_LOG.warning("membership_repair.malformed_task", extra={"raw": raw})
		return tasks

	async def size(self) -> int:
		return int(await self._client.llen(self.key))


__all__ = ["ACTIONS", "QUEUE_KEY", "MembershipRepairQueue", "RepairTask"]
