import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from huddle.api.pagination import encode_cursor
from huddle.domain.activities import schemas
from huddle.domain.activities.exceptions import NotFound, RateLimited, Unauthenticated, ValidationError
from huddle.domain.activities.service import ActivityService
from huddle.domain.chat.repo import ChatRepository
from huddle.domain.chat.service import ActivityChatService
from huddle.infra.auth import AuthenticatedUser
from huddle.settings import settings

OWNER = AuthenticatedUser(id="owner", display_name="Olivia")
ALICE = AuthenticatedUser(id="alice", display_name="Alice")
BOB = AuthenticatedUser(id="bob", display_name="Bob")


async def _publish(**overrides) -> str:
    data = {
        "title": "Trail Ride",
        "sport": "Cycling",
        "address_text": "Trailhead Lot B",
        "city": "Boulder",
        "state": "CO",
        "dates": ["2031-07-04T08:00"],
        "timezone": "UTC",
    }
    data.update(overrides)
    result = await ActivityService().publish(OWNER, schemas.ActivityDraftRequest(**data))
    return str(result.items[0].id)


@pytest.mark.asyncio
async def test_messages_are_listed_in_timestamp_order():
    activity_id = await _publish()
    repo = ChatRepository()
    base = datetime(2031, 7, 1, 12, tzinfo=timezone.utc)
    # Insert out of order; the feed orders by posting time.
    await repo.create_message(activity_id, "bob", "third", base + timedelta(minutes=2))
    await repo.create_message(activity_id, "alice", "first", base)
    await repo.create_message(activity_id, "owner", "second", base + timedelta(minutes=1))

    page = await ActivityChatService().list(activity_id, ALICE)

    assert [item.body for item in page.items] == ["first", "second", "third"]
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_equal_timestamps_keep_insertion_order():
    activity_id = await _publish()
    repo = ChatRepository()
    moment = datetime(2031, 7, 1, 12, tzinfo=timezone.utc)
    for body in ("a", "b", "c"):
        await repo.create_message(activity_id, "alice", body, moment)

    page = await ActivityChatService().list(activity_id, ALICE)

    assert [item.body for item in page.items] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_post_attaches_sender_name_and_trims_body():
    activity_id = await _publish()
    service = ActivityChatService()

    posted = await service.post(activity_id, ALICE, "  see you there  ")
    page = await service.list(activity_id, BOB)

    assert posted.body == "see you there"
    assert page.items[0].sender_name == "Alice"
    assert page.items[0].user_id == "alice"


@pytest.mark.asyncio
async def test_anonymous_callers_get_an_empty_feed():
    activity_id = await _publish()
    await ActivityChatService().post(activity_id, ALICE, "hello")

    page = await ActivityChatService().list(activity_id, None)

    assert page.items == []


@pytest.mark.asyncio
async def test_post_validation():
    activity_id = await _publish()
    service = ActivityChatService()

    with pytest.raises(Unauthenticated):
        await service.post(activity_id, None, "hi")
    with pytest.raises(ValidationError):
        await service.post(activity_id, ALICE, "   ")
    with pytest.raises(ValidationError):
        await service.post(activity_id, ALICE, "x" * (settings.chat_max_body_length + 1))
    with pytest.raises(NotFound):
        await service.post("00000000-0000-0000-0000-000000000000", ALICE, "hi")


@pytest.mark.asyncio
async def test_unpublished_activity_feed_is_hidden_from_others():
    activity_id = await _publish(published=False)
    service = ActivityChatService()

    await service.post(activity_id, OWNER, "note to self")
    with pytest.raises(NotFound):
        await service.list(activity_id, ALICE)


@pytest.mark.asyncio
async def test_pagination_walks_back_through_history():
    activity_id = await _publish()
    repo = ChatRepository()
    base = datetime(2031, 7, 1, 12, tzinfo=timezone.utc)
    for minute in range(5):
        await repo.create_message(activity_id, "alice", f"m{minute}", base + timedelta(minutes=minute))
    service = ActivityChatService()

    newest = await service.list(activity_id, ALICE, limit=2)
    assert [item.body for item in newest.items] == ["m3", "m4"]
    middle = await service.list(activity_id, ALICE, limit=2, cursor=newest.next_cursor)
    assert [item.body for item in middle.items] == ["m1", "m2"]
    oldest = await service.list(activity_id, ALICE, limit=2, cursor=middle.next_cursor)
    assert [item.body for item in oldest.items] == ["m0"]
    assert oldest.next_cursor is None


@pytest.mark.asyncio
async def test_invalid_cursor_is_rejected():
    activity_id = await _publish()
    with pytest.raises(ValidationError):
        await ActivityChatService().list(activity_id, ALICE, cursor="not-a-cursor")


@pytest.mark.asyncio
async def test_cursor_without_timezone_is_rejected():
    activity_id = await _publish()
    naive = base64.urlsafe_b64encode(json.dumps({"t": "2031-07-01T12:00:00", "seq": 5}).encode()).decode()
    aware = encode_cursor(datetime(2031, 7, 1, 12, tzinfo=timezone.utc), 5)
    service = ActivityChatService()

    with pytest.raises(ValidationError):
        await service.list(activity_id, ALICE, cursor=naive)
    page = await service.list(activity_id, ALICE, cursor=aware)
    assert page.items == []


@pytest.mark.asyncio
async def test_posting_is_rate_limited(monkeypatch):
    activity_id = await _publish()
    monkeypatch.setattr(settings, "chat_post_limit_per_minute", 2)
    service = ActivityChatService()

    await service.post(activity_id, ALICE, "one")
    await service.post(activity_id, ALICE, "two")
    with pytest.raises(RateLimited):
        await service.post(activity_id, ALICE, "three")
    # Other users have their own budget.
    await service.post(activity_id, BOB, "hi")
