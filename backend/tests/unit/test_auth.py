import pytest

from huddle.domain.activities.exceptions import Unauthenticated
from huddle.infra import jwt as jwt_helper
from huddle.infra.auth import verify_access_jwt


def test_access_token_round_trip_carries_profile_claims():
    token = jwt_helper.encode_access({"sub": "user-9", "name": "Nina", "email": "nina@example.com"})

    user = verify_access_jwt(token)

    assert user.id == "user-9"
    assert user.display_name == "Nina"
    assert user.email == "nina@example.com"


def test_expired_or_tampered_tokens_are_rejected():
    expired = jwt_helper.encode_access({"sub": "user-9"}, ttl_seconds=-60)
    with pytest.raises(Unauthenticated):
        verify_access_jwt(expired)

    token = jwt_helper.encode_access({"sub": "user-9"})
    with pytest.raises(Unauthenticated):
        verify_access_jwt(token[:-2] + "xx")


def test_token_without_subject_is_rejected():
    token = jwt_helper.encode_access({"name": "Nobody"})
    with pytest.raises(Unauthenticated):
        verify_access_jwt(token)
