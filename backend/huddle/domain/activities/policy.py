"""Authorization guards for activity operations."""

from __future__ import annotations

from typing import Optional

from huddle.domain.activities.exceptions import NotFound, Unauthenticated, Unauthorized
from huddle.domain.activities.models import ActivityRecord
from huddle.infra.auth import AuthenticatedUser


def require_authenticated(user: Optional[AuthenticatedUser]) -> AuthenticatedUser:
	if user is None or not str(user.id).strip():
		raise Unauthenticated()
	return user


def require_visible(record: Optional[ActivityRecord], user: Optional[AuthenticatedUser]) -> ActivityRecord:
	"""Unpublished records exist only for their owner; everyone else gets NotFound."""
	if record is None:
		raise NotFound("activity_not_found")
	if not record.published and not record.is_owned_by(user.id if user else None):
		raise NotFound("activity_not_found")
	return record


def require_owner(record: Optional[ActivityRecord], user: Optional[AuthenticatedUser]) -> ActivityRecord:
	user = require_authenticated(user)
	if record is None:
		raise NotFound("activity_not_found")
	if not record.is_owned_by(user.id):
		raise Unauthorized("owner_required")
	return record


def is_owner(record: ActivityRecord, user: Optional[AuthenticatedUser]) -> bool:
	return user is not None and record.is_owned_by(user.id)
