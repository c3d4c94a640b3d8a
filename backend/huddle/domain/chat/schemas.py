"""Pydantic schemas for the activity chat API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import ChatMessage


class PostMessageRequest(BaseModel):
	body: str = Field(default="", description="Message text; blank bodies are rejected")


class MessageResponse(BaseModel):
	message_id: str
	activity_id: str
	user_id: str
	sender_name: Optional[str] = None
	body: str
	posted_at: datetime

	@classmethod
	def from_model(cls, message: ChatMessage, *, sender_name: Optional[str] = None) -> "MessageResponse":
		return cls(
			message_id=message.message_id,
			activity_id=message.activity_id,
			user_id=message.user_id,
			sender_name=sender_name,
			body=message.body,
			posted_at=message.posted_at,
		)


class MessageListResponse(BaseModel):
	items: List[MessageResponse]
	next_cursor: Optional[str] = None
