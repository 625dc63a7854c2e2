"""FastAPI application for the Helping Hands API."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from helpinghands import obs
from helpinghands.api import auth, events, ops, users
from helpinghands.api.deps import build_coordinator, build_profile_service
from helpinghands.api.errors import install_error_handlers
from helpinghands.domain.events.repair import MembershipRepairQueue
from helpinghands.infra import postgres
from helpinghands.infra.redis import close_redis
from helpinghands.jobs.membership_repair import MembershipRepairJob
from helpinghands.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	coordinator = build_coordinator()
	app.state.coordinator = coordinator
	app.state.profile_service = build_profile_service(coordinator)
	worker_tasks: list[asyncio.Task] = []
	worker_instances: list[object] = []
	if settings.membership_repair_worker_enabled:
		repair_job = MembershipRepairJob(
			queue=MembershipRepairQueue(),
			event_store=coordinator.events,
			user_store=coordinator.users,
		)
		worker_instances.append(repair_job)
		worker_tasks.append(asyncio.create_task(repair_job.run_forever(), name="membership-repair"))
	app.state.workers = worker_instances
	try:
		yield
	finally:
		for instance in worker_instances:
			stop = getattr(instance, "stop", None)
			if callable(stop):
				stop()
		if worker_tasks:
			for task in worker_tasks:
				task.cancel()
			await asyncio.gather(*worker_tasks, return_exceptions=True)
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Helping Hands API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins or [])
if not allow_origins:
	allow_origins = ["http://localhost:3000", "http://localhost:5173"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
allow_credentials = "*" not in allow_origins

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=allow_credentials,
	allow_methods=["*"],
	allow_headers=["*"],
)

obs.init(app)

app.include_router(events.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(auth.router, prefix="/api")
app.include_router(ops.router)


@app.get("/")
async def root() -> dict[str, str]:
	return {"message": "Helping Hands API is running", "service": settings.service_name}
