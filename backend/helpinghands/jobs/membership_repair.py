"""Background worker that replays failed joined-events index writes."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from helpinghands.domain.events.coordinator import EventStore, UserStore
from helpinghands.domain.events.repair import MembershipRepairQueue, RepairTask
from helpinghands.obs import metrics as obs_metrics
from helpinghands.settings import settings

_LOG = logging.getLogger(__name__)

JOB_NAME = "membership_repair"


class MembershipRepairJob:
	"""Drains the repair queue, converging each (user, event) index entry on the Event Store.

	A queued task only names the pair to look at. Whether the id ends up in the
	user's joined list is decided by the event's participant list at replay
	time, so a stale ``add`` can never resurrect a membership the user has
	since left.
	"""

	def __init__(
		self,
		*,
		queue: MembershipRepairQueue,
		event_store: EventStore,
		user_store: UserStore,
		batch_size: Optional[int] = None,
		max_attempts: Optional[int] = None,
		poll_interval: Optional[float] = None,
	) -> None:
		self.queue = queue
		self.events = event_store
		self.users = user_store
		self.batch_size = batch_size or settings.membership_repair_batch_size
		self.max_attempts = max_attempts or settings.membership_repair_max_attempts
		self.poll_interval = settings.membership_repair_poll_seconds if poll_interval is None else poll_interval
		self._running = False

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			try:
				repaired = await self.run_once()
			except Exception:
				_LOG.exception("membership_repair.batch_failed")
				repaired = 0
			if repaired == 0:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		self._running = False

	async def run_once(self) -> int:
		"""Process one batch and return how many tasks were applied."""
		started = time.perf_counter()
		tasks = await self.queue.pop_batch(self.batch_size)
		repaired = 0
		for task in tasks:
			if await self._apply(task):
				repaired += 1
		obs_metrics.set_membership_repair_depth(await self.queue.size())
		obs_metrics.record_job_run(
			JOB_NAME,
			result="ok" if repaired == len(tasks) else "partial",
			duration_seconds=time.perf_counter() - started,
		)
		return repaired

	async def _is_participant(self, task: RepairTask) -> bool:
		event = await self.events.get_by_id(task.event_id)
		return event is not None and event.has_participant(task.user_id)

	async def _apply(self, task: RepairTask) -> bool:
		try:
			action = "add" if await self._is_participant(task) else "remove"
			if action == "add":
				await self.users.add_joined_event(task.user_id, task.event_id)
			else:
				await self.users.remove_joined_event(task.user_id, task.event_id)
		except Exception:
			task.attempts += 1
			if task.attempts >= self.max_attempts:
				_LOG.exception(
					"membership_repair.abandoned",
					extra={
						"action": task.action,
						"user_id": task.user_id,
						"event_id": str(task.event_id),
						"attempts": task.attempts,
					},
				)
				obs_metrics.inc_membership_repair(task.action, "abandoned")
				return False
			_LOG.warning(
				"membership_repair.retry",
				extra={"action": task.action, "user_id": task.user_id, "attempts": task.attempts},
			)
			obs_metrics.inc_membership_repair(task.action, "retry")
			await self.queue.requeue(task)
			return False
		if action != task.action:
			_LOG.info(
				"membership_repair.superseded",
				extra={"queued": task.action, "applied": action, "user_id": task.user_id, "event_id": str(task.event_id)},
			)
			obs_metrics.inc_membership_repair(task.action, "superseded")
		else:
			obs_metrics.inc_membership_repair(task.action, "repaired")
		return True


__all__ = ["JOB_NAME", "MembershipRepairJob"]
