"""Custom exceptions for activity scheduling and attendance."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class ActivityError(Exception):
	"""Base class for activity related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "activity_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ValidationError(ActivityError):
	"""Malformed or missing field; the detail is shown to the author verbatim."""

	status_code = _HTTP_422
	detail = "validation_error"


class Unauthenticated(ActivityError):
	"""No identity was presented; the client should send the user to sign-in."""

	status_code = status.HTTP_401_UNAUTHORIZED
	detail = "authentication_required"


class Unauthorized(ActivityError):
	"""Identity present but lacking the required relationship (e.g. not the owner)."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class CapacityExceeded(ActivityError):
	status_code = status.HTTP_409_CONFLICT
	detail = "capacity_exceeded"


class NotFound(ActivityError):
	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class RateLimited(ActivityError):
	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	detail = "rate_limited"


class IdempotencyConflict(ActivityError):
	"""Raised when an idempotency key is reused with a mismatched payload."""

	status_code = status.HTTP_409_CONFLICT
	detail = "idempotency_conflict"


class IdempotencyInProgress(ActivityError):
	"""Raised when a request with the same idempotency key is still being processed."""

	status_code = status.HTTP_409_CONFLICT
	detail = "idempotency_in_progress"
