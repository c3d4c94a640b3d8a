"""Idempotency keys for submissions that must not be applied twice.

A client that double-submits the publish form sends the same
``Idempotency-Key``; the second call replays the first call's result ids
instead of creating another batch of activities. A key is claimed before
the work starts, so a duplicate that arrives while the first call is still
running is refused rather than processed.
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

import asyncpg

from huddle.domain.activities.exceptions import IdempotencyConflict, IdempotencyInProgress
from huddle.infra.postgres import pool_or_none
from huddle.obs import metrics as obs_metrics
from huddle.settings import settings

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS idempotency_keys (
	key TEXT NOT NULL,
	handler TEXT NOT NULL,
	result_id TEXT,
	payload_hash TEXT,
	expires_at TIMESTAMPTZ NOT NULL,
	PRIMARY KEY (key, handler)
);
"""


def hash_payload(s: str) -> str:
	return hashlib.sha256(s.encode("utf-8")).hexdigest()


async def ensure_schema(conn: asyncpg.Connection) -> None:
	await conn.execute(SCHEMA_SQL)


def _resolve_existing(result_id: Optional[str], existing_hash: Optional[str], payload_hash: Optional[str]) -> str:
	"""Outcome for a key someone else already holds: replay, conflict or in-progress."""
	if payload_hash and existing_hash and existing_hash != payload_hash:
		obs_metrics.inc_idem("conflict")
		raise IdempotencyConflict()
	if not result_id:
		obs_metrics.inc_idem("in_progress")
		raise IdempotencyInProgress()
	obs_metrics.inc_idem("hit")
	return str(result_id)


class _InMemoryKeys:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._keys: Dict[Tuple[str, str], Tuple[Optional[str], Optional[str], datetime]] = {}

	async def reset(self) -> None:
		async with self._lock:
			self._keys.clear()

	async def claim(
		self, key: str, handler: str, payload_hash: Optional[str], expires_at: datetime
	) -> Optional[Tuple[Optional[str], Optional[str]]]:
		"""Claim the key; return the holder's (result_id, payload_hash) if it is taken."""
		async with self._lock:
			now = datetime.now(timezone.utc)
			existing = self._keys.get((key, handler))
			if existing and existing[2] > now:
				return existing[0], existing[1]
			self._keys[(key, handler)] = (None, payload_hash, expires_at)
			return None

	async def complete(self, key: str, handler: str, result_id: str) -> None:
		async with self._lock:
			entry = self._keys.get((key, handler))
			if entry is not None:
				self._keys[(key, handler)] = (result_id, entry[1], entry[2])

	async def release(self, key: str, handler: str) -> None:
		async with self._lock:
			entry = self._keys.get((key, handler))
			if entry is not None and entry[0] is None:
				del self._keys[(key, handler)]


_MEMORY_KEYS = _InMemoryKeys()


def memory_keys() -> _InMemoryKeys:
	return _MEMORY_KEYS


async def begin(
	key: str,
	handler: str,
	*,
	payload_hash: Optional[str],
	ttl_s: int | None = None,
) -> Optional[str]:
	"""Claim a key for this call.

	Returns None when the caller now owns the key and should do the work,
	or the stored result id when the key is a completed replay. Raises
	``IdempotencyInProgress`` while another call holds the key unfinished and
	``IdempotencyConflict`` when the key was used for a different payload.
	"""
	ttl = ttl_s or settings.idempotency_ttl_seconds
	exp = datetime.now(timezone.utc) + timedelta(seconds=ttl)
	pool = await pool_or_none()
	if pool is None:
		held = await _MEMORY_KEYS.claim(key, handler, payload_hash, exp)
		if held is None:
			obs_metrics.inc_idem("miss")
			return None
		return _resolve_existing(held[0], held[1], payload_hash)

	async with pool.acquire() as conn:
		claimed = await conn.fetchval(
			"""
			INSERT INTO idempotency_keys(key, handler, result_id, payload_hash, expires_at)
			VALUES($1,$2,NULL,$3,$4)
			ON CONFLICT (key, handler) DO UPDATE
				SET result_id = NULL, payload_hash = EXCLUDED.payload_hash, expires_at = EXCLUDED.expires_at
				WHERE idempotency_keys.expires_at <= NOW()
			RETURNING key
			""",
			key,
			handler,
			payload_hash,
			exp,
		)
		if claimed is not None:
			obs_metrics.inc_idem("miss")
			return None
		row = await conn.fetchrow(
			"SELECT result_id, payload_hash FROM idempotency_keys WHERE key=$1 AND handler=$2",
			key,
			handler,
		)
	if row is None:
		# Holder released the key between the two statements.
		obs_metrics.inc_idem("in_progress")
		raise IdempotencyInProgress()
	return _resolve_existing(row["result_id"], row["payload_hash"], payload_hash)


async def complete(key: str, handler: str, result_id: str) -> None:
	pool = await pool_or_none()
	if pool is None:
		await _MEMORY_KEYS.complete(key, handler, result_id)
		return
	async with pool.acquire() as conn:
		await conn.execute(
			"UPDATE idempotency_keys SET result_id=$3 WHERE key=$1 AND handler=$2",
			key,
			handler,
			result_id,
		)


async def release(key: str, handler: str) -> None:
	"""Drop an unfinished claim so the client can retry after a failed call."""
	pool = await pool_or_none()
	if pool is None:
		await _MEMORY_KEYS.release(key, handler)
		return
	async with pool.acquire() as conn:
		await conn.execute(
			"DELETE FROM idempotency_keys WHERE key=$1 AND handler=$2 AND result_id IS NULL",
			key,
			handler,
		)
