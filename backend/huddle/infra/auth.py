"""Authentication helpers for FastAPI endpoints.

The identity provider issues HS256 access tokens; this module only verifies
them and hands an ``AuthenticatedUser`` to the domain. In development the
``X-User-*`` headers are accepted so local tools can impersonate users.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from huddle.domain.activities.exceptions import Unauthenticated
from huddle.infra import jwt as jwt_helper
from huddle.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None
	email: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		payload = jwt_helper.decode_access(token)
	except jwt_helper.InvalidTokenError:
		raise Unauthenticated("invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise Unauthenticated("invalid_token")
	display_name = payload.get("name") or payload.get("display_name")
	email = payload.get("email")
	return AuthenticatedUser(
		id=sub,
		display_name=str(display_name) if display_name is not None else None,
		email=str(email) if email is not None else None,
	)


async def get_optional_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[AuthenticatedUser]:
	"""Resolve the caller if one is presented, else None.

	A bearer token that is present but invalid is still an error; only the
	complete absence of credentials yields an anonymous caller.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	# In dev only, allow X-User-* fallback for local tools
	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id.strip(), display_name=x_user_name, email=x_user_email)

	return None


async def get_current_user(
	user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
	if user is None:
		raise Unauthenticated()
	return user
