"""Domain models for activity chat feeds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping


@dataclass(slots=True, frozen=True)
class ChatMessage:
	"""One append-only message; ``seq`` breaks ties between equal timestamps."""

	message_id: str
	activity_id: str
	user_id: str
	body: str
	posted_at: datetime
	seq: int

	@classmethod
	def from_record(cls, row: Mapping[str, Any]) -> "ChatMessage":
		return cls(
			message_id=str(row["id"]),
			activity_id=str(row["activity_id"]),
			user_id=str(row["user_id"]),
			body=row["body"],
			posted_at=row["posted_at"],
			seq=int(row["seq"]),
		)

	def sort_key(self) -> tuple[datetime, int]:
		return (self.posted_at, self.seq)


@dataclass(slots=True, frozen=True)
class FeedCursor:
	"""Position of the oldest message already shown; the next page starts before it."""

	posted_at: datetime
	seq: int
