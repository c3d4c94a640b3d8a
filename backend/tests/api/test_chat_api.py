import pytest

OWNER = {"X-User-Id": "owner-1", "X-User-Name": "Olivia"}
ALICE = {"X-User-Id": "alice", "X-User-Name": "Alice"}


async def _create(api_client) -> str:
    payload = {
        "title": "Beach Volleyball",
        "sport": "Volleyball",
        "address_text": "Pier 39 Sand Court",
        "city": "Santa Monica",
        "state": "CA",
        "dates": ["2031-08-01T17:00"],
        "timezone": "UTC",
    }
    response = await api_client.post("/activities", json=payload, headers=OWNER)
    assert response.status_code == 201
    return response.json()["items"][0]["id"]


@pytest.mark.asyncio
async def test_chat_post_and_list(api_client):
    activity_id = await _create(api_client)

    first = await api_client.post(f"/activities/{activity_id}/messages", json={"body": "Bring sunscreen"}, headers=OWNER)
    assert first.status_code == 201
    second = await api_client.post(f"/activities/{activity_id}/messages", json={"body": "On my way"}, headers=ALICE)
    assert second.status_code == 201

    feed = await api_client.get(f"/activities/{activity_id}/messages", headers=ALICE)
    assert feed.status_code == 200
    items = feed.json()["items"]
    assert [item["body"] for item in items] == ["Bring sunscreen", "On my way"]
    assert [item["sender_name"] for item in items] == ["Olivia", "Alice"]


@pytest.mark.asyncio
async def test_chat_rejects_blank_and_anonymous_posts(api_client):
    activity_id = await _create(api_client)

    blank = await api_client.post(f"/activities/{activity_id}/messages", json={"body": "  "}, headers=ALICE)
    assert blank.status_code == 422
    anonymous = await api_client.post(f"/activities/{activity_id}/messages", json={"body": "hi"})
    assert anonymous.status_code == 401

    feed = await api_client.get(f"/activities/{activity_id}/messages")
    assert feed.status_code == 200
    assert feed.json()["items"] == []
