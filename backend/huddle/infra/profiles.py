"""Read access to user profiles owned by the identity provider.

Lookups are batched: callers pass the distinct set of user ids they need
and receive a mapping back, so a chat page costs one query regardless of
how many messages it holds.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import asyncpg

from huddle.infra.auth import AuthenticatedUser
from huddle.infra.postgres import pool_or_none

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS profiles (
	user_id TEXT PRIMARY KEY,
	display_name TEXT,
	email TEXT,
	avatar_ref TEXT,
	updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


@dataclass(slots=True)
class Profile:
	user_id: str
	display_name: Optional[str] = None
	email: Optional[str] = None
	avatar_ref: Optional[str] = None


async def ensure_schema(conn: asyncpg.Connection) -> None:
	await conn.execute(SCHEMA_SQL)


class _InMemoryProfiles:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._profiles: Dict[str, Profile] = {}

	async def reset(self) -> None:
		async with self._lock:
			self._profiles.clear()

	async def put(self, profile: Profile) -> None:
		async with self._lock:
			existing = self._profiles.get(profile.user_id)
			if existing is None:
				self._profiles[profile.user_id] = profile
				return
			existing.display_name = profile.display_name or existing.display_name
			existing.email = profile.email or existing.email
			existing.avatar_ref = profile.avatar_ref or existing.avatar_ref

	async def fetch_many(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
		async with self._lock:
			return {uid: self._profiles[uid] for uid in user_ids if uid in self._profiles}


_MEMORY_PROFILES = _InMemoryProfiles()


def memory_profiles() -> _InMemoryProfiles:
	return _MEMORY_PROFILES


class ProfileDirectory:
	async def fetch_many(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
		wanted = sorted({str(uid) for uid in user_ids if uid})
		if not wanted:
			return {}
		pool = await pool_or_none()
		if pool is None:
			return await _MEMORY_PROFILES.fetch_many(wanted)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT user_id, display_name, email, avatar_ref FROM profiles WHERE user_id = ANY($1::text[])",
				wanted,
			)
		return {
			str(row["user_id"]): Profile(
				user_id=str(row["user_id"]),
				display_name=row["display_name"],
				email=row["email"],
				avatar_ref=row["avatar_ref"],
			)
			for row in rows
		}

	async def remember(self, user: AuthenticatedUser) -> None:
		"""Record the name/email claims the identity provider put on the caller's token."""
		if not user.display_name and not user.email:
			return
		profile = Profile(user_id=user.id, display_name=user.display_name, email=user.email)
		pool = await pool_or_none()
		if pool is None:
			await _MEMORY_PROFILES.put(profile)
			return
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO profiles (user_id, display_name, email)
				VALUES ($1, $2, $3)
				ON CONFLICT (user_id) DO UPDATE SET
					display_name = COALESCE(EXCLUDED.display_name, profiles.display_name),
					email = COALESCE(EXCLUDED.email, profiles.email),
					updated_at = NOW()
				""",
				profile.user_id,
				profile.display_name,
				profile.email,
			)
