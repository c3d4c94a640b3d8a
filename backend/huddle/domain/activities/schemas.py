"""Pydantic schemas for the activities API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from huddle.domain.activities.capacity import Verdict

# Numeric form fields arrive as whatever the form produced; the expander owns
# their validation so that the author sees one consistent message per field.
FormNumber = Union[int, float, str, None]


class ActivityDraftRequest(BaseModel):
	title: str = ""
	sport: str = ""
	description: Optional[str] = None
	address_text: str = ""
	city: str = ""
	state: str = ""
	dates: List[str] = Field(default_factory=list, description="Local date/time strings, one per occurrence")
	timezone: Optional[str] = Field(default=None, description="IANA zone the dates were entered in")
	capacity: FormNumber = Field(default=None, description="Empty means unlimited")
	waitlist_capacity: FormNumber = None
	price_usd: FormNumber = None
	image_ref: Optional[str] = None
	organizer_whatsapp: Optional[str] = None
	published: bool = True
	is_public: bool = True


class ActivityUpdateRequest(ActivityDraftRequest):
	"""Edit form: the first date moves the edited record, any others become new siblings.

	``image_ref`` is ignored here; the image changes through the image endpoint.
	"""


class ActivityResponse(BaseModel):
	id: UUID
	owner_id: str
	title: str
	sport: str
	description: Optional[str]
	start_at: datetime
	address_text: str
	city: str
	state: str
	capacity: Optional[int]
	waitlist_capacity: int
	price_cents: int
	image_ref: Optional[str]
	image_url: Optional[str] = None
	organizer_whatsapp: Optional[str] = None
	published: bool
	is_public: bool
	created_at: datetime
	updated_at: datetime
	confirmed_count: int = 0
	waitlisted_count: int = 0
	spots_left: Optional[int] = None
	is_owner: bool = False
	is_attending: bool = False


class PublishResponse(BaseModel):
	items: List[ActivityResponse]


class UpdateResponse(BaseModel):
	updated: ActivityResponse
	created: List[ActivityResponse] = []


class AttendanceStateResponse(BaseModel):
	activity_id: UUID
	attending: bool
	verdict: Optional[Verdict] = None
	confirmed_count: int
	waitlisted_count: int
	spots_left: Optional[int] = None


class PublicRosterEntry(BaseModel):
	user_id: str
	display_name: Optional[str] = None


class OwnerRosterEntry(BaseModel):
	user_id: str
	display_name: Optional[str] = None
	email: Optional[str] = None
	confirmed_at: datetime
	waitlisted: bool = False


class PublicRoster(BaseModel):
	activity_id: UUID
	view: Literal["public"] = "public"
	confirmed_count: int
	attendees: List[PublicRosterEntry] = []


class OwnerRoster(BaseModel):
	activity_id: UUID
	view: Literal["owner"] = "owner"
	confirmed_count: int
	waitlisted_count: int = 0
	attendees: List[OwnerRosterEntry] = []


RosterResponse = Union[OwnerRoster, PublicRoster]
