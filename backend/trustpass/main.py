"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trustpass.api import connections, identity, leaderboard, ops, passes, proximity, ratings
from trustpass.api.errors import install_error_handlers
from trustpass.api.middleware_request_id import RequestIdMiddleware
from trustpass.domain import container
from trustpass.domain.events.relay import EventRelay
from trustpass.domain.events.sockets import ReputationNamespace, set_namespace
from trustpass.domain.ratings.jobs import PassExpirySweeper
from trustpass.infra import postgres
from trustpass.obs import init as obs_init
from trustpass.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	if settings.store_backend == "postgres":
		pool = await postgres.init_pool()
		container.configure_postgres(pool)
	store = container.get_store()
	worker_tasks: list[asyncio.Task] = []
	worker_instances: list[object] = []
	if settings.event_relay_enabled:
		relay = EventRelay(store, clock=container.get_clock())
		worker_instances.append(relay)
		worker_tasks.append(asyncio.create_task(relay.run_forever(), name="trustpass-event-relay"))
	if settings.pass_expiry_job_enabled:
		sweeper = PassExpirySweeper(store, engine=container.get_rating_engine(), clock=container.get_clock())
		worker_instances.append(sweeper)
		worker_tasks.append(asyncio.create_task(sweeper.run_forever(), name="trustpass-pass-expiry"))
	app.state.workers = worker_instances
	logger.info("startup_complete", extra={"store_backend": settings.store_backend, "workers": len(worker_tasks)})
	try:
		yield
	finally:
		for instance in worker_instances:
			stop = getattr(instance, "stop", None)
			if callable(stop):
				stop()
		for task in worker_tasks:
			task.cancel()
		if worker_tasks:
			await asyncio.gather(*worker_tasks, return_exceptions=True)
		if settings.store_backend == "postgres":
			await postgres.close_pool()


app = FastAPI(title="trustpass reputation engine", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:8081"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True
if "*" in allow_origins and not settings.is_dev():
	allow_origins = [origin for origin in allow_origins if origin != "*"]

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials="*" not in allow_origins,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
reputation_namespace = ReputationNamespace()
sio.register_namespace(reputation_namespace)
set_namespace(reputation_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.add_middleware(RequestIdMiddleware)

app.include_router(identity.router, tags=["identity"])
app.include_router(connections.router, tags=["connections"])
app.include_router(passes.router, tags=["passes"])
app.include_router(ratings.router, tags=["ratings"])
app.include_router(proximity.router)
app.include_router(leaderboard.router)
app.include_router(ops.router)
