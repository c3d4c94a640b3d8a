"""Activity publication and management.

Publishing runs the expander once and hands every draft to a single
transactional insert. Editing reuses the same expansion asymmetrically: the
first date moves the edited record, the rest become new siblings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from huddle.domain.activities import expander, policy, repo as repo_module, schemas
from huddle.domain.activities.capacity import spots_left, waitlisted_count
from huddle.domain.activities.exceptions import NotFound, ValidationError
from huddle.domain.activities.models import ActivityDraft, ActivityRecord
from huddle.infra import idempotency
from huddle.infra.auth import AuthenticatedUser
from huddle.infra.storage import ObjectStorage, get_storage
from huddle.obs import metrics as obs_metrics
from huddle.obs.logging import get_logger
from huddle.settings import settings

log = get_logger(__name__)

PUBLISH_HANDLER = "activities.publish"


def to_response(
	record: ActivityRecord,
	*,
	confirmed_count: int,
	viewer: Optional[AuthenticatedUser] = None,
	is_attending: bool = False,
	storage: Optional[ObjectStorage] = None,
) -> schemas.ActivityResponse:
	storage = storage or get_storage()
	return schemas.ActivityResponse(
		id=UUID(record.id),
		owner_id=record.owner_id,
		title=record.title,
		sport=record.sport,
		description=record.description,
		start_at=record.start_at,
		address_text=record.address_text,
		city=record.city,
		state=record.state,
		capacity=record.capacity,
		waitlist_capacity=record.waitlist_capacity,
		price_cents=record.price_cents,
		image_ref=record.image_ref,
		image_url=storage.public_url(record.image_ref) if record.image_ref else None,
		organizer_whatsapp=record.organizer_whatsapp,
		published=record.published,
		is_public=record.is_public,
		created_at=record.created_at,
		updated_at=record.updated_at,
		confirmed_count=confirmed_count,
		waitlisted_count=waitlisted_count(record.capacity, confirmed_count),
		spots_left=spots_left(record.capacity, confirmed_count),
		is_owner=policy.is_owner(record, viewer),
		is_attending=is_attending,
	)


class ActivityService:
	def __init__(
		self,
		repository: repo_module.ActivitiesRepository | None = None,
		storage: ObjectStorage | None = None,
	) -> None:
		self._repo = repository or repo_module.ActivitiesRepository()
		self._storage = storage

	@property
	def storage(self) -> ObjectStorage:
		return self._storage or get_storage()

	def _response(self, record: ActivityRecord, confirmed_count: int, viewer=None, is_attending=False):
		return to_response(
			record,
			confirmed_count=confirmed_count,
			viewer=viewer,
			is_attending=is_attending,
			storage=self.storage,
		)

	async def publish(
		self,
		user: Optional[AuthenticatedUser],
		payload: schemas.ActivityDraftRequest,
		*,
		idempotency_key: Optional[str] = None,
	) -> schemas.PublishResponse:
		"""Create one activity per unique date, all of them or none."""
		user = policy.require_authenticated(user)
		drafts = expander.expand(user.id, payload, image_ref=payload.image_ref)

		key = (idempotency_key or "").strip()
		scoped_key = f"{user.id}:{key}" if key else None
		if scoped_key:
			replay = await idempotency.begin(
				scoped_key,
				PUBLISH_HANDLER,
				payload_hash=idempotency.hash_payload(payload.model_dump_json()),
			)
			if replay:
				return await self._replay_publish(user, replay)

		try:
			records = await self._repo.insert_drafts(drafts)
		except Exception:
			if scoped_key:
				await idempotency.release(scoped_key, PUBLISH_HANDLER)
			raise
		if scoped_key:
			await idempotency.complete(scoped_key, PUBLISH_HANDLER, ",".join(r.id for r in records))
		obs_metrics.inc_publish(len(records))
		log.info("activities_published", extra={"owner_id": user.id, "records": len(records)})
		return schemas.PublishResponse(items=[self._response(record, 0, viewer=user) for record in records])

	async def _replay_publish(self, user: AuthenticatedUser, result_id: str) -> schemas.PublishResponse:
		items: List[schemas.ActivityResponse] = []
		for activity_id in result_id.split(","):
			record = await self._repo.get_activity(activity_id)
			if record is None:
				continue
			count = await self._repo.count_attendance(record.id)
			items.append(self._response(record, count, viewer=user))
		return schemas.PublishResponse(items=items)

	async def get_activity(
		self, activity_id: str, user: Optional[AuthenticatedUser]
	) -> schemas.ActivityResponse:
		record = policy.require_visible(await self._repo.get_activity(activity_id), user)
		count = await self._repo.count_attendance(record.id)
		attending = False
		if user is not None:
			attending = await self._repo.attendance_position(record.id, user.id) is not None
		return self._response(record, count, viewer=user, is_attending=attending)

	async def list_upcoming(
		self, user: Optional[AuthenticatedUser] = None, *, limit: Optional[int] = None
	) -> List[schemas.ActivityResponse]:
		cap = settings.upcoming_page_size
		page = cap if limit is None else max(1, min(limit, cap))
		rows = await self._repo.list_upcoming(datetime.now(timezone.utc), page)
		return [self._response(record, count, viewer=user) for record, count in rows]

	async def list_owned(self, user: Optional[AuthenticatedUser]) -> List[schemas.ActivityResponse]:
		user = policy.require_authenticated(user)
		rows = await self._repo.list_by_owner(user.id)
		return [self._response(record, count, viewer=user) for record, count in rows]

	async def update_activity(
		self,
		activity_id: str,
		user: Optional[AuthenticatedUser],
		payload: schemas.ActivityUpdateRequest,
	) -> schemas.UpdateResponse:
		user = policy.require_authenticated(user)
		current = policy.require_owner(await self._repo.get_activity(activity_id), user)
		content = expander.build_content(payload, image_ref=current.image_ref)
		instants = expander.resolve_instants(payload.dates, payload.timezone)
		first, extra = instants[0], instants[1:]
		sibling_drafts = [ActivityDraft(owner_id=current.owner_id, start_at=start, content=content) for start in extra]
		result = await self._repo.update_with_siblings(current, content, first, sibling_drafts)
		if result is None:
			raise NotFound("activity_not_found")
		updated, siblings = result
		obs_metrics.inc_siblings_created(len(siblings))
		log.info(
			"activity_updated",
			extra={"activity_id": updated.id, "siblings_created": len(siblings)},
		)
		count = await self._repo.count_attendance(updated.id)
		return schemas.UpdateResponse(
			updated=self._response(updated, count, viewer=user),
			created=[self._response(record, 0, viewer=user) for record in siblings],
		)

	async def delete_activity(self, activity_id: str, user: Optional[AuthenticatedUser]) -> None:
		policy.require_owner(await self._repo.get_activity(activity_id), user)
		removed = await self._repo.delete_activity(activity_id)
		if removed is None:
			raise NotFound("activity_not_found")
		obs_metrics.inc_activity_delete()
		log.info("activity_deleted", extra={"activity_id": activity_id})
		await self._discard_image(removed.image_ref)

	async def replace_image(
		self,
		activity_id: str,
		user: Optional[AuthenticatedUser],
		data: bytes,
		content_type: Optional[str],
	) -> schemas.ActivityResponse:
		current = policy.require_owner(await self._repo.get_activity(activity_id), user)
		previous_ref = current.image_ref
		media_type = (content_type or "").split(";")[0].strip().lower()
		if not media_type.startswith("image/"):
			raise ValidationError("Invalid file. Please upload an image.")
		if not data:
			raise ValidationError("The uploaded image is empty.")
		new_ref = await self.storage.put(data, content_type=media_type, prefix=f"activities/{activity_id}")
		updated = await self._repo.set_image_ref(activity_id, new_ref)
		if updated is None:
			await self._discard_image(new_ref)
			raise NotFound("activity_not_found")
		if previous_ref and previous_ref != new_ref:
			await self._discard_image(previous_ref)
		count = await self._repo.count_attendance(updated.id)
		return self._response(updated, count, viewer=user)

	async def _discard_image(self, image_ref: Optional[str]) -> None:
		"""Best-effort removal; the image may still be shared by sibling records."""
		if not image_ref:
			return
		try:
			if await self._repo.count_image_refs(image_ref) > 0:
				return
			await self.storage.remove(image_ref)
		except Exception:
			obs_metrics.inc_storage_cleanup_failure()
			log.warning("image_cleanup_failed", extra={"image_ref": image_ref}, exc_info=True)
