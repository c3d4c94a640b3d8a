"""Storage for activity chat messages."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import asyncpg
import ulid

from huddle.infra.postgres import pool_or_none

from .models import ChatMessage, FeedCursor

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS activity_messages (
	seq BIGSERIAL PRIMARY KEY,
	id TEXT NOT NULL UNIQUE,
	activity_id UUID NOT NULL REFERENCES activities (id) ON DELETE CASCADE,
	user_id TEXT NOT NULL,
	body TEXT NOT NULL CHECK (length(btrim(body)) > 0),
	posted_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS activity_messages_feed_idx ON activity_messages (activity_id, posted_at, seq);
"""


async def ensure_schema(conn: asyncpg.Connection) -> None:
	await conn.execute(SCHEMA_SQL)


class _InMemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._messages: Dict[str, List[ChatMessage]] = {}
		self._seq = 0

	async def reset(self) -> None:
		async with self._lock:
			self._messages.clear()
			self._seq = 0

	async def create_message(self, activity_id: str, user_id: str, body: str, posted_at: datetime) -> ChatMessage:
		async with self._lock:
			self._seq += 1
			message = ChatMessage(
				message_id=str(ulid.new()),
				activity_id=activity_id,
				user_id=user_id,
				body=body,
				posted_at=posted_at,
				seq=self._seq,
			)
			self._messages.setdefault(activity_id, []).append(message)
			return message

	async def list_messages(
		self,
		activity_id: str,
		*,
		before: Optional[FeedCursor],
		limit: int,
	) -> List[ChatMessage]:
		async with self._lock:
			messages = sorted(self._messages.get(activity_id, []), key=ChatMessage.sort_key, reverse=True)
			if before is not None:
				bound = (before.posted_at, before.seq)
				messages = [m for m in messages if m.sort_key() < bound]
			return messages[:limit]


_MEMORY_STORE = _InMemoryStore()


def memory_store() -> _InMemoryStore:
	return _MEMORY_STORE


class ChatRepository:
	"""Repository backed by asyncpg with an in-memory fallback."""

	async def create_message(self, activity_id: str, user_id: str, body: str, posted_at: datetime) -> ChatMessage:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.create_message(activity_id, user_id, body, posted_at)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO activity_messages (id, activity_id, user_id, body, posted_at)
				VALUES ($1, $2, $3, $4, $5)
				RETURNING seq, id, activity_id, user_id, body, posted_at
				""",
				str(ulid.new()),
				activity_id,
				user_id,
				body,
				posted_at,
			)
		return ChatMessage.from_record(row)

	async def list_messages(
		self,
		activity_id: str,
		*,
		before: Optional[FeedCursor],
		limit: int,
	) -> List[ChatMessage]:
		"""Newest-first slice of the feed, optionally strictly older than ``before``."""
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.list_messages(activity_id, before=before, limit=limit)
		params: List[object] = [activity_id]
		where_clause = ""
		if before is not None:
			params.extend([before.posted_at, before.seq])
			where_clause = " AND (posted_at, seq) < ($2, $3)"
		params.append(limit)
		query = (
			"""
			SELECT seq, id, activity_id, user_id, body, posted_at
			FROM activity_messages
			WHERE activity_id = $1
			"""
			+ where_clause
			+ f" ORDER BY posted_at DESC, seq DESC LIMIT ${len(params)}"
		)
		async with pool.acquire() as conn:
			rows = await conn.fetch(query, *params)
		return [ChatMessage.from_record(row) for row in rows]
