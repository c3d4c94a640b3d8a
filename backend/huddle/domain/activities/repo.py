"""Persistence for activities and attendance entries.

Backed by asyncpg. When pool creation is disabled the repository falls back to a
process-local store with the same semantics, which is what the test suite
and local tools run against.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import asyncpg

from huddle.domain.activities.capacity import Verdict, position_verdict
from huddle.domain.activities.models import (
	CONTENT_FIELDS,
	ActivityContent,
	ActivityDraft,
	ActivityRecord,
	AttendanceEntry,
)
from huddle.infra.postgres import pool_or_none
from huddle.obs.logging import get_logger

log = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS activities (
	id UUID PRIMARY KEY,
	owner_id TEXT NOT NULL,
	title TEXT NOT NULL,
	sport TEXT NOT NULL,
	description TEXT,
	start_at TIMESTAMPTZ NOT NULL,
	address_text TEXT NOT NULL,
	city TEXT NOT NULL,
	state TEXT NOT NULL,
	capacity INTEGER CHECK (capacity IS NULL OR capacity > 0),
	waitlist_capacity INTEGER NOT NULL DEFAULT 0 CHECK (waitlist_capacity >= 0),
	price_cents INTEGER NOT NULL DEFAULT 0 CHECK (price_cents >= 0),
	image_ref TEXT,
	organizer_whatsapp TEXT,
	published BOOLEAN NOT NULL DEFAULT TRUE,
	is_public BOOLEAN NOT NULL DEFAULT TRUE,
	created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
	updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS activities_owner_start_idx ON activities (owner_id, start_at);
CREATE INDEX IF NOT EXISTS activities_listed_start_idx ON activities (start_at) WHERE published AND is_public;
CREATE TABLE IF NOT EXISTS activity_attendance (
	activity_id UUID NOT NULL REFERENCES activities (id) ON DELETE CASCADE,
	user_id TEXT NOT NULL,
	confirmed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
	PRIMARY KEY (activity_id, user_id)
);
"""

_COLUMNS = ("id", "owner_id", "start_at", "created_at", "updated_at") + CONTENT_FIELDS
_INSERT_SQL = "INSERT INTO activities ({cols}) VALUES ({params})".format(
	cols=", ".join(_COLUMNS),
	params=", ".join(f"${idx}" for idx in range(1, len(_COLUMNS) + 1)),
)
_COUNT_SUBQUERY = "(SELECT COUNT(*) FROM activity_attendance aa WHERE aa.activity_id = a.id) AS confirmed_count"

ListedActivity = Tuple[ActivityRecord, int]


@dataclass(slots=True)
class ConfirmOutcome:
	verdict: Verdict
	created: bool
	confirmed_count: int


def _new_id() -> str:
	return str(uuid.uuid4())


def _row_values(record: ActivityRecord) -> list[object]:
	return [getattr(record, column) for column in _COLUMNS]


async def ensure_schema(conn: asyncpg.Connection) -> None:
	await conn.execute(SCHEMA_SQL)


class _InMemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._activities: Dict[str, ActivityRecord] = {}
		self._attendance: Dict[str, Dict[str, AttendanceEntry]] = {}

	async def reset(self) -> None:
		async with self._lock:
			self._activities.clear()
			self._attendance.clear()

	def _count(self, activity_id: str) -> int:
		return len(self._attendance.get(activity_id, {}))

	def _ordered_entries(self, activity_id: str) -> List[AttendanceEntry]:
		entries = list(self._attendance.get(activity_id, {}).values())
		entries.sort(key=lambda entry: (entry.confirmed_at, entry.user_id))
		return entries

	async def insert_many(self, records: Sequence[ActivityRecord]) -> None:
		async with self._lock:
			# Stage first so a bad batch leaves nothing behind.
			staged = {record.id: record for record in records}
			if len(staged) != len(records) or any(record_id in self._activities for record_id in staged):
				raise ValueError("duplicate_activity_id")
			self._activities.update(staged)
			for record_id in staged:
				self._attendance.setdefault(record_id, {})

	async def replace_and_insert(self, updated: ActivityRecord, siblings: Sequence[ActivityRecord]) -> bool:
		async with self._lock:
			if updated.id not in self._activities:
				return False
			staged = {record.id: record for record in siblings}
			if any(record_id in self._activities for record_id in staged):
				raise ValueError("duplicate_activity_id")
			self._activities[updated.id] = updated
			self._activities.update(staged)
			for record_id in staged:
				self._attendance.setdefault(record_id, {})
			return True

	async def get(self, activity_id: str) -> Optional[ActivityRecord]:
		async with self._lock:
			return self._activities.get(activity_id)

	async def list_upcoming(self, now: datetime, limit: int) -> List[ListedActivity]:
		async with self._lock:
			listed = [
				record
				for record in self._activities.values()
				if record.is_listed() and record.start_at >= now
			]
			listed.sort(key=lambda record: (record.start_at, record.id))
			return [(record, self._count(record.id)) for record in listed[:limit]]

	async def list_by_owner(self, owner_id: str) -> List[ListedActivity]:
		async with self._lock:
			owned = [record for record in self._activities.values() if record.owner_id == owner_id]
			owned.sort(key=lambda record: (record.start_at, record.id))
			return [(record, self._count(record.id)) for record in owned]

	async def delete(self, activity_id: str) -> Optional[ActivityRecord]:
		async with self._lock:
			self._attendance.pop(activity_id, None)
			return self._activities.pop(activity_id, None)

	async def set_image_ref(self, activity_id: str, image_ref: Optional[str], now: datetime) -> Optional[ActivityRecord]:
		async with self._lock:
			record = self._activities.get(activity_id)
			if record is None:
				return None
			updated = replace(record, image_ref=image_ref, updated_at=now)
			self._activities[activity_id] = updated
			return updated

	async def count_image_refs(self, image_ref: str) -> int:
		async with self._lock:
			return sum(1 for record in self._activities.values() if record.image_ref == image_ref)

	async def count_attendance(self, activity_id: str) -> int:
		async with self._lock:
			return self._count(activity_id)

	async def attendance_position(self, activity_id: str, user_id: str) -> Optional[int]:
		async with self._lock:
			for index, entry in enumerate(self._ordered_entries(activity_id)):
				if entry.user_id == user_id:
					return index
			return None

	async def try_confirm(
		self,
		activity_id: str,
		user_id: str,
		capacity: Optional[int],
		decide: Callable[[int], Verdict],
		now: datetime,
	) -> ConfirmOutcome:
		async with self._lock:
			entries = self._attendance.setdefault(activity_id, {})
			count = len(entries)
			if user_id in entries:
				position = [entry.user_id for entry in self._ordered_entries(activity_id)].index(user_id)
				return ConfirmOutcome(position_verdict(capacity, position), False, count)
			verdict = decide(count)
			if verdict is Verdict.REJECTED:
				return ConfirmOutcome(verdict, False, count)
			entries[user_id] = AttendanceEntry(activity_id=activity_id, user_id=user_id, confirmed_at=now)
			return ConfirmOutcome(verdict, True, count + 1)

	async def delete_attendance(self, activity_id: str, user_id: str) -> bool:
		async with self._lock:
			return self._attendance.get(activity_id, {}).pop(user_id, None) is not None

	async def list_attendance(self, activity_id: str) -> List[AttendanceEntry]:
		async with self._lock:
			return self._ordered_entries(activity_id)


_MEMORY_STORE = _InMemoryStore()


def memory_store() -> _InMemoryStore:
	return _MEMORY_STORE


class ActivitiesRepository:
	"""Repository backed by asyncpg with an in-memory fallback."""

	async def insert_drafts(self, drafts: Sequence[ActivityDraft]) -> List[ActivityRecord]:
		"""Insert every draft or none of them."""
		now = datetime.now(timezone.utc)
		records = [ActivityRecord.from_draft(_new_id(), draft, now) for draft in drafts]
		pool = await pool_or_none()
		if pool is None:
			await _MEMORY_STORE.insert_many(records)
			return records
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.executemany(_INSERT_SQL, [_row_values(record) for record in records])
		return records

	async def update_with_siblings(
		self,
		current: ActivityRecord,
		content: ActivityContent,
		start_at: datetime,
		sibling_drafts: Sequence[ActivityDraft],
	) -> Optional[Tuple[ActivityRecord, List[ActivityRecord]]]:
		"""Rewrite ``current`` and create the extra siblings in one unit; None if it vanished."""
		now = datetime.now(timezone.utc)
		updated = current.with_content(content, start_at=start_at, now=now)
		siblings = [ActivityRecord.from_draft(_new_id(), draft, now) for draft in sibling_drafts]
		pool = await pool_or_none()
		if pool is None:
			if not await _MEMORY_STORE.replace_and_insert(updated, siblings):
				return None
			return updated, siblings
		assignments = ", ".join(f"{name} = ${idx}" for idx, name in enumerate(CONTENT_FIELDS, start=4))
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					f"UPDATE activities SET start_at = $2, updated_at = $3, {assignments} WHERE id = $1 RETURNING *",
					current.id,
					start_at,
					now,
					*[getattr(content, name) for name in CONTENT_FIELDS],
				)
				if row is None:
					return None
				if siblings:
					await conn.executemany(_INSERT_SQL, [_row_values(record) for record in siblings])
		return ActivityRecord.from_record(row), siblings

	async def get_activity(self, activity_id: str) -> Optional[ActivityRecord]:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.get(activity_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM activities WHERE id = $1", activity_id)
		return ActivityRecord.from_record(row) if row else None

	async def list_upcoming(self, now: datetime, limit: int) -> List[ListedActivity]:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.list_upcoming(now, limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT a.*, {_COUNT_SUBQUERY}
				FROM activities a
				WHERE a.published AND a.is_public AND a.start_at >= $1
				ORDER BY a.start_at ASC, a.id ASC
				LIMIT $2
				""",
				now,
				limit,
			)
		return [(ActivityRecord.from_record(row), int(row["confirmed_count"])) for row in rows]

	async def list_by_owner(self, owner_id: str) -> List[ListedActivity]:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.list_by_owner(owner_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT a.*, {_COUNT_SUBQUERY}
				FROM activities a
				WHERE a.owner_id = $1
				ORDER BY a.start_at ASC, a.id ASC
				""",
				owner_id,
			)
		return [(ActivityRecord.from_record(row), int(row["confirmed_count"])) for row in rows]

	async def delete_activity(self, activity_id: str) -> Optional[ActivityRecord]:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.delete(activity_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("DELETE FROM activities WHERE id = $1 RETURNING *", activity_id)
		return ActivityRecord.from_record(row) if row else None

	async def set_image_ref(self, activity_id: str, image_ref: Optional[str]) -> Optional[ActivityRecord]:
		now = datetime.now(timezone.utc)
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.set_image_ref(activity_id, image_ref, now)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"UPDATE activities SET image_ref = $2, updated_at = $3 WHERE id = $1 RETURNING *",
				activity_id,
				image_ref,
				now,
			)
		return ActivityRecord.from_record(row) if row else None

	async def count_image_refs(self, image_ref: str) -> int:
		"""Siblings share one stored image, so removal must check for other holders."""
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.count_image_refs(image_ref)
		async with pool.acquire() as conn:
			return int(await conn.fetchval("SELECT COUNT(*) FROM activities WHERE image_ref = $1", image_ref))

	async def count_attendance(self, activity_id: str) -> int:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.count_attendance(activity_id)
		async with pool.acquire() as conn:
			return int(
				await conn.fetchval(
					"SELECT COUNT(*) FROM activity_attendance WHERE activity_id = $1",
					activity_id,
				)
			)

	async def attendance_position(self, activity_id: str, user_id: str) -> Optional[int]:
		"""Zero-based rank of the user's entry in confirmation order, None if absent."""
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.attendance_position(activity_id, user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT (
					SELECT COUNT(*) FROM activity_attendance other
					WHERE other.activity_id = mine.activity_id
					AND (other.confirmed_at, other.user_id) < (mine.confirmed_at, mine.user_id)
				) AS position
				FROM activity_attendance mine
				WHERE mine.activity_id = $1 AND mine.user_id = $2
				""",
				activity_id,
				user_id,
			)
		return int(row["position"]) if row else None

	async def try_confirm(
		self,
		activity_id: str,
		user_id: str,
		*,
		capacity: Optional[int],
		decide: Callable[[int], Verdict],
	) -> ConfirmOutcome:
		"""Count, decide and insert inside one transaction.

		The primary key on (activity_id, user_id) plus ON CONFLICT DO NOTHING
		keeps double submits from one user harmless. Two different users racing
		for the last seat are not serialised; both may be admitted.
		"""
		now = datetime.now(timezone.utc)
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.try_confirm(activity_id, user_id, capacity, decide, now)
		async with pool.acquire() as conn:
			async with conn.transaction():
				count = int(
					await conn.fetchval(
						"SELECT COUNT(*) FROM activity_attendance WHERE activity_id = $1",
						activity_id,
					)
				)
				existing = await conn.fetchrow(
					"""
					SELECT (
						SELECT COUNT(*) FROM activity_attendance other
						WHERE other.activity_id = mine.activity_id
						AND (other.confirmed_at, other.user_id) < (mine.confirmed_at, mine.user_id)
					) AS position
					FROM activity_attendance mine
					WHERE mine.activity_id = $1 AND mine.user_id = $2
					""",
					activity_id,
					user_id,
				)
				if existing is not None:
					return ConfirmOutcome(position_verdict(capacity, int(existing["position"])), False, count)
				verdict = decide(count)
				if verdict is Verdict.REJECTED:
					return ConfirmOutcome(verdict, False, count)
				inserted = await conn.fetchval(
					"""
					INSERT INTO activity_attendance (activity_id, user_id, confirmed_at)
					VALUES ($1, $2, $3)
					ON CONFLICT (activity_id, user_id) DO NOTHING
					RETURNING user_id
					""",
					activity_id,
					user_id,
					now,
				)
				if inserted is None:
					# A concurrent request from the same user won the insert.
					log.info("attendance_confirm_raced", extra={"activity_id": activity_id})
					return ConfirmOutcome(verdict, False, count + 1)
				return ConfirmOutcome(verdict, True, count + 1)

	async def delete_attendance(self, activity_id: str, user_id: str) -> bool:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.delete_attendance(activity_id, user_id)
		async with pool.acquire() as conn:
			deleted = await conn.fetchval(
				"DELETE FROM activity_attendance WHERE activity_id = $1 AND user_id = $2 RETURNING user_id",
				activity_id,
				user_id,
			)
		return deleted is not None

	async def list_attendance(self, activity_id: str) -> List[AttendanceEntry]:
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_STORE.list_attendance(activity_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT activity_id, user_id, confirmed_at
				FROM activity_attendance
				WHERE activity_id = $1
				ORDER BY confirmed_at ASC, user_id ASC
				""",
				activity_id,
			)
		return [AttendanceEntry.from_record(row) for row in rows]
