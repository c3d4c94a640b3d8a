"""Domain models for scheduled activities and attendance."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Mapping, Optional


@dataclass(slots=True, frozen=True)
class ActivityContent:
	"""Everything an author fills in except the start time.

	Sibling records produced from one submission share a single instance of
	this payload.
	"""

	title: str
	sport: str
	address_text: str
	city: str
	state: str
	description: Optional[str] = None
	capacity: Optional[int] = None
	waitlist_capacity: int = 0
	price_cents: int = 0
	image_ref: Optional[str] = None
	organizer_whatsapp: Optional[str] = None
	published: bool = True
	is_public: bool = True


CONTENT_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(ActivityContent))


@dataclass(slots=True, frozen=True)
class ActivityDraft:
	"""A fully validated record waiting to be inserted."""

	owner_id: str
	start_at: datetime
	content: ActivityContent


@dataclass(slots=True)
class ActivityRecord:
	"""One schedulable activity with a single fixed start instant."""

	id: str
	owner_id: str
	start_at: datetime
	title: str
	sport: str
	address_text: str
	city: str
	state: str
	created_at: datetime
	updated_at: datetime
	description: Optional[str] = None
	capacity: Optional[int] = None
	waitlist_capacity: int = 0
	price_cents: int = 0
	image_ref: Optional[str] = None
	organizer_whatsapp: Optional[str] = None
	published: bool = True
	is_public: bool = True

	@classmethod
	def from_draft(cls, activity_id: str, draft: ActivityDraft, now: datetime) -> "ActivityRecord":
		values = {name: getattr(draft.content, name) for name in CONTENT_FIELDS}
		return cls(
			id=activity_id,
			owner_id=draft.owner_id,
			start_at=draft.start_at,
			created_at=now,
			updated_at=now,
			**values,
		)

	@classmethod
	def from_record(cls, row: Mapping[str, Any]) -> "ActivityRecord":
		values = {name: row[name] for name in CONTENT_FIELDS}
		return cls(
			id=str(row["id"]),
			owner_id=str(row["owner_id"]),
			start_at=row["start_at"],
			created_at=row["created_at"],
			updated_at=row["updated_at"],
			**values,
		)

	def with_content(self, content: ActivityContent, *, start_at: datetime, now: datetime) -> "ActivityRecord":
		values = {name: getattr(content, name) for name in CONTENT_FIELDS}
		return replace(self, start_at=start_at, updated_at=now, **values)

	def is_owned_by(self, user_id: Optional[str]) -> bool:
		return user_id is not None and str(user_id) == self.owner_id

	def is_listed(self) -> bool:
		return self.published and self.is_public


@dataclass(slots=True, frozen=True)
class AttendanceEntry:
	"""Existence of an entry means the user is confirmed; there is no cancelled state."""

	activity_id: str
	user_id: str
	confirmed_at: datetime

	@classmethod
	def from_record(cls, row: Mapping[str, Any]) -> "AttendanceEntry":
		return cls(
			activity_id=str(row["activity_id"]),
			user_id=str(row["user_id"]),
			confirmed_at=row["confirmed_at"],
		)
