"""Chat feed logic for activity conversations.

Reads are open to any signed-in viewer of a visible activity; anonymous
callers get an empty feed rather than an error. Writes require a user,
a non-blank body and a free slot in the per-user post rate limit.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from huddle.api.pagination import decode_cursor, encode_cursor
from huddle.domain.activities import policy
from huddle.domain.activities.exceptions import RateLimited, ValidationError
from huddle.domain.activities.repo import ActivitiesRepository
from huddle.infra import rate_limit
from huddle.infra.auth import AuthenticatedUser
from huddle.infra.profiles import ProfileDirectory
from huddle.obs import metrics as obs_metrics
from huddle.obs.logging import get_logger
from huddle.settings import settings

from .models import ChatMessage, FeedCursor
from .repo import ChatRepository
from .schemas import MessageListResponse, MessageResponse

log = get_logger(__name__)


def _parse_cursor(cursor: Optional[str]) -> Optional[FeedCursor]:
	if not cursor:
		return None
	try:
		posted_at, seq = decode_cursor(cursor)
	except ValueError:
		raise ValidationError("invalid_cursor")
	return FeedCursor(posted_at=posted_at, seq=seq)


class ActivityChatService:
	def __init__(
		self,
		repository: ChatRepository | None = None,
		activities: ActivitiesRepository | None = None,
		profiles: ProfileDirectory | None = None,
	) -> None:
		self._repo = repository or ChatRepository()
		self._activities = activities or ActivitiesRepository()
		self._profiles = profiles or ProfileDirectory()

	async def post(
		self,
		activity_id: str,
		user: Optional[AuthenticatedUser],
		body: str,
		*,
		posted_at: Optional[datetime] = None,
	) -> MessageResponse:
		user = policy.require_authenticated(user)
		text = (body or "").strip()
		if not text:
			raise ValidationError("Message cannot be empty.")
		if len(text) > settings.chat_max_body_length:
			raise ValidationError(f"Message must be at most {settings.chat_max_body_length} characters.")
		record = policy.require_visible(await self._activities.get_activity(activity_id), user)
		allowed = await rate_limit.allow(
			"chat_post",
			user.id,
			limit=settings.chat_post_limit_per_minute,
		)
		if not allowed:
			raise RateLimited()
		message = await self._repo.create_message(
			record.id,
			user.id,
			text,
			posted_at or datetime.now(timezone.utc),
		)
		await self._profiles.remember(user)
		obs_metrics.inc_chat_post()
		log.info("chat_message_posted", extra={"activity_id": record.id, "message_id": message.message_id})
		return MessageResponse.from_model(message, sender_name=user.display_name)

	async def list(
		self,
		activity_id: str,
		user: Optional[AuthenticatedUser],
		*,
		limit: Optional[int] = None,
		cursor: Optional[str] = None,
	) -> MessageListResponse:
		"""Return one page of the feed in posting order, oldest first.

		``next_cursor`` points at older messages when more remain.
		"""
		if user is None:
			return MessageListResponse(items=[])
		record = policy.require_visible(await self._activities.get_activity(activity_id), user)
		size = limit or settings.chat_default_page_size
		size = max(1, min(size, settings.chat_max_page_size))
		before = _parse_cursor(cursor)
		newest_first = await self._repo.list_messages(record.id, before=before, limit=size + 1)
		has_more = len(newest_first) > size
		page: List[ChatMessage] = list(reversed(newest_first[:size]))
		profiles = await self._profiles.fetch_many({message.user_id for message in page})
		items = [
			MessageResponse.from_model(
				message,
				sender_name=profiles[message.user_id].display_name if message.user_id in profiles else None,
			)
			for message in page
		]
		next_cursor = None
		if has_more and page:
			oldest = page[0]
			next_cursor = encode_cursor(oldest.posted_at, oldest.seq)
		return MessageListResponse(items=items, next_cursor=next_cursor)


_SERVICE = ActivityChatService()


async def post_message(
	activity_id: str, user: Optional[AuthenticatedUser], body: str
) -> MessageResponse:
	return await _SERVICE.post(activity_id, user, body)


async def list_messages(
	activity_id: str,
	user: Optional[AuthenticatedUser],
	*,
	limit: Optional[int] = None,
	cursor: Optional[str] = None,
) -> MessageListResponse:
	return await _SERVICE.list(activity_id, user, limit=limit, cursor=cursor)
