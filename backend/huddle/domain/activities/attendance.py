"""Attendance coordination: confirm, cancel and roster views.

Counts are always taken from the attendance entries at call time. A user can
only create or delete their own entry. The owner gets a richer roster but
no write access to anyone else's entry.

Concurrency is best-effort at the capacity boundary: confirmations from
different users are not serialised against each other, so two users racing
for the final seat may both be admitted. Duplicate entries for one user are
impossible because (activity_id, user_id) is the primary key.
"""

from __future__ import annotations

from functools import partial
from typing import Optional
from uuid import UUID

from huddle.domain.activities import capacity, policy, repo as repo_module, schemas
from huddle.domain.activities.capacity import Verdict
from huddle.domain.activities.exceptions import CapacityExceeded
from huddle.domain.activities.models import ActivityRecord
from huddle.infra.auth import AuthenticatedUser
from huddle.infra.profiles import ProfileDirectory
from huddle.obs import metrics as obs_metrics
from huddle.obs.logging import get_logger

log = get_logger(__name__)


def _state(
	record: ActivityRecord,
	*,
	attending: bool,
	verdict: Optional[Verdict],
	confirmed_count: int,
) -> schemas.AttendanceStateResponse:
	return schemas.AttendanceStateResponse(
		activity_id=UUID(record.id),
		attending=attending,
		verdict=verdict,
		confirmed_count=confirmed_count,
		waitlisted_count=capacity.waitlisted_count(record.capacity, confirmed_count),
		spots_left=capacity.spots_left(record.capacity, confirmed_count),
	)


class AttendanceCoordinator:
	def __init__(
		self,
		repository: repo_module.ActivitiesRepository | None = None,
		profiles: ProfileDirectory | None = None,
	) -> None:
		self._repo = repository or repo_module.ActivitiesRepository()
		self._profiles = profiles or ProfileDirectory()

	async def _load(self, activity_id: str, user: Optional[AuthenticatedUser]) -> ActivityRecord:
		return policy.require_visible(await self._repo.get_activity(activity_id), user)

	async def confirm(
		self, activity_id: str, user: Optional[AuthenticatedUser]
	) -> schemas.AttendanceStateResponse:
		"""Confirm the caller; repeating the call is a no-op success."""
		user = policy.require_authenticated(user)
		record = await self._load(activity_id, user)
		decide = partial(capacity.evaluate, record.capacity, record.waitlist_capacity)
		outcome = await self._repo.try_confirm(
			record.id,
			user.id,
			capacity=record.capacity,
			decide=decide,
		)
		if outcome.verdict is Verdict.REJECTED:
			obs_metrics.inc_attendance_confirm(Verdict.REJECTED.value)
			log.info("attendance_rejected", extra={"activity_id": record.id, "confirmed": outcome.confirmed_count})
			raise CapacityExceeded()
		if outcome.created:
			obs_metrics.inc_attendance_confirm(outcome.verdict.value)
			await self._profiles.remember(user)
		return _state(
			record,
			attending=True,
			verdict=outcome.verdict,
			confirmed_count=outcome.confirmed_count,
		)

	async def cancel(
		self, activity_id: str, user: Optional[AuthenticatedUser]
	) -> schemas.AttendanceStateResponse:
		"""Remove the caller's own entry; absent entries are a no-op."""
		user = policy.require_authenticated(user)
		record = await self._load(activity_id, user)
		if await self._repo.delete_attendance(record.id, user.id):
			obs_metrics.inc_attendance_cancel()
		count = await self._repo.count_attendance(record.id)
		return _state(record, attending=False, verdict=None, confirmed_count=count)

	async def status(
		self, activity_id: str, user: Optional[AuthenticatedUser]
	) -> schemas.AttendanceStateResponse:
		record = await self._load(activity_id, user)
		count = await self._repo.count_attendance(record.id)
		position = None
		if user is not None:
			position = await self._repo.attendance_position(record.id, user.id)
		if position is None:
			return _state(record, attending=False, verdict=None, confirmed_count=count)
		return _state(
			record,
			attending=True,
			verdict=capacity.position_verdict(record.capacity, position),
			confirmed_count=count,
		)

	async def list_confirmed(
		self, activity_id: str, user: Optional[AuthenticatedUser]
	) -> schemas.RosterResponse:
		"""Owner gets contact details; everyone else gets names only."""
		record = await self._load(activity_id, user)
		entries = await self._repo.list_attendance(record.id)
		if user is None:
			return schemas.PublicRoster(activity_id=UUID(record.id), confirmed_count=len(entries))
		profiles = await self._profiles.fetch_many(entry.user_id for entry in entries)
		if not policy.is_owner(record, user):
			return schemas.PublicRoster(
				activity_id=UUID(record.id),
				confirmed_count=len(entries),
				attendees=[
					schemas.PublicRosterEntry(
						user_id=entry.user_id,
						display_name=profiles[entry.user_id].display_name if entry.user_id in profiles else None,
					)
					for entry in entries
				],
			)
		attendees = []
		for position, entry in enumerate(entries):
			profile = profiles.get(entry.user_id)
			attendees.append(
				schemas.OwnerRosterEntry(
					user_id=entry.user_id,
					display_name=profile.display_name if profile else None,
					email=profile.email if profile else None,
					confirmed_at=entry.confirmed_at,
					waitlisted=capacity.position_verdict(record.capacity, position) is Verdict.WAITLISTED,
				)
			)
		return schemas.OwnerRoster(
			activity_id=UUID(record.id),
			confirmed_count=len(entries),
			waitlisted_count=capacity.waitlisted_count(record.capacity, len(entries)),
			attendees=attendees,
		)
