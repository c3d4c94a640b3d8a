from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from huddle.api import activities as activities_api
from huddle.api import chat as chat_api
from huddle.api import ops as ops_api
from huddle.api.errors import install_error_handlers
from huddle.domain.activities import repo as activities_repo
from huddle.domain.chat import repo as chat_repo
from huddle.infra import idempotency, postgres, profiles
from huddle.obs import init as obs_init
from huddle.settings import settings


async def ensure_schema(pool) -> None:
	# Chat references activities, so order matters.
	async with pool.acquire() as conn:
		await profiles.ensure_schema(conn)
		await activities_repo.ensure_schema(conn)
		await chat_repo.ensure_schema(conn)
		await idempotency.ensure_schema(conn)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if pool is not None:
		await ensure_schema(pool)
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="Huddle Activities", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(ops_api.router)
app.include_router(activities_api.router)
app.include_router(chat_api.router)
