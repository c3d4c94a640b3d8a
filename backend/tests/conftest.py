import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from huddle.domain.activities.repo import memory_store as activities_memory
from huddle.domain.chat.repo import memory_store as chat_memory
from huddle.infra import postgres, storage
from huddle.infra.idempotency import memory_keys
from huddle.infra.profiles import memory_profiles
from huddle.main import app
from huddle.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from huddle.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)
	postgres.set_pool(None)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id headers, which are only accepted in
	dev mode.
	"""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest_asyncio.fixture(autouse=True)
async def reset_memory_stores():
	await activities_memory().reset()
	await chat_memory().reset()
	await memory_profiles().reset()
	await memory_keys().reset()
	yield


@pytest.fixture
def object_storage():
	original = storage.get_storage()
	backend = storage.InMemoryObjectStorage()
	storage.set_storage(backend)
	try:
		yield backend
	finally:
		storage.set_storage(original)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
