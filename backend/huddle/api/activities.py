"""Activity publication, management and attendance endpoints."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from huddle.api.errors import to_http_error
from huddle.domain.activities import schemas
from huddle.domain.activities.attendance import AttendanceCoordinator
from huddle.domain.activities.exceptions import ActivityError
from huddle.domain.activities.service import ActivityService
from huddle.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

router = APIRouter(prefix="/activities", tags=["activities"])
_service = ActivityService()
_attendance = AttendanceCoordinator()


@router.post("", response_model=schemas.PublishResponse, status_code=status.HTTP_201_CREATED)
async def publish_activities_endpoint(
	payload: schemas.ActivityDraftRequest,
	idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.PublishResponse:
	try:
		return await _service.publish(auth_user, payload, idempotency_key=idempotency_key)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.get("", response_model=List[schemas.ActivityResponse])
async def list_upcoming_endpoint(
	limit: Optional[int] = Query(default=None, ge=1),
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> List[schemas.ActivityResponse]:
	return await _service.list_upcoming(auth_user, limit=limit)


@router.get("/mine", response_model=List[schemas.ActivityResponse])
async def list_owned_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.ActivityResponse]:
	return await _service.list_owned(auth_user)


@router.get("/{activity_id}", response_model=schemas.ActivityResponse)
async def get_activity_endpoint(
	activity_id: UUID,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> schemas.ActivityResponse:
	try:
		return await _service.get_activity(str(activity_id), auth_user)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.put("/{activity_id}", response_model=schemas.UpdateResponse)
async def update_activity_endpoint(
	activity_id: UUID,
	payload: schemas.ActivityUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.UpdateResponse:
	try:
		return await _service.update_activity(str(activity_id), auth_user, payload)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.delete(
	"/{activity_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_activity_endpoint(
	activity_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
	try:
		await _service.delete_activity(str(activity_id), auth_user)
	except ActivityError as exc:
		raise to_http_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{activity_id}/image", response_model=schemas.ActivityResponse)
async def replace_image_endpoint(
	activity_id: UUID,
	request: Request,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ActivityResponse:
	"""Raw image bytes in the body; the Content-Type header names the format."""
	data = await request.body()
	try:
		return await _service.replace_image(
			str(activity_id),
			auth_user,
			data,
			request.headers.get("content-type"),
		)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.post("/{activity_id}/attendance", response_model=schemas.AttendanceStateResponse)
async def confirm_attendance_endpoint(
	activity_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.AttendanceStateResponse:
	try:
		return await _attendance.confirm(str(activity_id), auth_user)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.delete("/{activity_id}/attendance", response_model=schemas.AttendanceStateResponse)
async def cancel_attendance_endpoint(
	activity_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.AttendanceStateResponse:
	try:
		return await _attendance.cancel(str(activity_id), auth_user)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.get("/{activity_id}/attendance", response_model=schemas.AttendanceStateResponse)
async def attendance_status_endpoint(
	activity_id: UUID,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> schemas.AttendanceStateResponse:
	try:
		return await _attendance.status(str(activity_id), auth_user)
	except ActivityError as exc:
		raise to_http_error(exc) from exc


@router.get("/{activity_id}/roster", response_model=schemas.RosterResponse)
async def roster_endpoint(
	activity_id: UUID,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> schemas.RosterResponse:
	try:
		return await _attendance.list_confirmed(str(activity_id), auth_user)
	except ActivityError as exc:
		raise to_http_error(exc) from exc
