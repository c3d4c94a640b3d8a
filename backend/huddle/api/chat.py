"""FastAPI endpoints for activity chat feeds."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from huddle.api.errors import to_http_error
from huddle.domain.activities.exceptions import ActivityError
from huddle.domain.chat import list_messages, post_message
from huddle.domain.chat.schemas import MessageListResponse, MessageResponse, PostMessageRequest
from huddle.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

router = APIRouter(prefix="/activities", tags=["chat"])


@router.get("/{activity_id}/messages", response_model=MessageListResponse)
async def list_messages_endpoint(
	activity_id: UUID,
	limit: Optional[int] = Query(default=None, ge=1),
	cursor: Optional[str] = Query(default=None),
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> MessageListResponse:
	try:
		return await list_messages(str(activity_id), auth_user, limit=limit, cursor=cursor)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.post("/{activity_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message_endpoint(
	activity_id: UUID,
	payload: PostMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> MessageResponse:
	try:
		return await post_message(str(activity_id), auth_user, payload.body)
	except ActivityError as exc:
		raise to_http_error(exc) from exc
