import pytest

OWNER = {"X-User-Id": "owner-1", "X-User-Name": "Olivia", "X-User-Email": "olivia@example.com"}
ALICE = {"X-User-Id": "alice", "X-User-Name": "Alice", "X-User-Email": "alice@example.com"}
BOB = {"X-User-Id": "bob", "X-User-Name": "Bob"}


def _form(**overrides):
    data = {
        "title": "Pickup Hoops",
        "sport": "Basketball",
        "address_text": "Rec Center Court 2",
        "city": "Denver",
        "state": "CO",
        "dates": ["2031-10-01T18:30", "2031-10-08T18:30"],
        "timezone": "America/Denver",
        "capacity": "1",
        "price_usd": "5",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_publish_and_attend_flow(api_client):
    response = await api_client.post("/activities", json=_form(), headers=OWNER)
    assert response.status_code == 201
    items = response.json()["items"]
    assert len(items) == 2
    assert items[0]["price_cents"] == 500
    assert items[0]["start_at"].startswith("2031-10-02T00:30")
    activity_id = items[0]["id"]

    listing = await api_client.get("/activities")
    assert listing.status_code == 200
    assert [item["id"] for item in listing.json()] == [item["id"] for item in items]

    confirm = await api_client.post(f"/activities/{activity_id}/attendance", headers=ALICE)
    assert confirm.status_code == 200
    assert confirm.json()["verdict"] == "accepted"
    assert confirm.json()["spots_left"] == 0

    full = await api_client.post(f"/activities/{activity_id}/attendance", headers=BOB)
    assert full.status_code == 409
    assert full.json()["detail"] == "capacity_exceeded"
    assert "request_id" in full.json()

    detail = await api_client.get(f"/activities/{activity_id}", headers=ALICE)
    assert detail.json()["is_attending"] is True
    assert detail.json()["confirmed_count"] == 1

    owner_roster = await api_client.get(f"/activities/{activity_id}/roster", headers=OWNER)
    assert owner_roster.json()["view"] == "owner"
    assert owner_roster.json()["attendees"][0]["email"] == "alice@example.com"

    public_roster = await api_client.get(f"/activities/{activity_id}/roster", headers=BOB)
    assert public_roster.json()["view"] == "public"
    assert public_roster.json()["attendees"] == [{"user_id": "alice", "display_name": "Alice"}]

    cancel = await api_client.delete(f"/activities/{activity_id}/attendance", headers=ALICE)
    assert cancel.status_code == 200
    assert cancel.json()["confirmed_count"] == 0


@pytest.mark.asyncio
async def test_publish_validation_error_is_readable(api_client):
    response = await api_client.post("/activities", json=_form(dates=[]), headers=OWNER)
    assert response.status_code == 422
    assert response.json()["detail"] == "Add at least 1 date & time."

    response = await api_client.get("/activities/mine", headers=OWNER)
    assert response.json() == []


@pytest.mark.asyncio
async def test_anonymous_write_requires_sign_in(api_client):
    response = await api_client.post("/activities", json=_form())
    assert response.status_code == 401
    assert response.json()["detail"] == "authentication_required"

    created = await api_client.post("/activities", json=_form(), headers=OWNER)
    activity_id = created.json()["items"][0]["id"]
    response = await api_client.post(f"/activities/{activity_id}/attendance")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_publish_honours_idempotency_key(api_client):
    headers = {**OWNER, "Idempotency-Key": "submit-42"}
    first = await api_client.post("/activities", json=_form(), headers=headers)
    second = await api_client.post("/activities", json=_form(), headers=headers)

    assert first.status_code == second.status_code == 201
    assert [item["id"] for item in first.json()["items"]] == [item["id"] for item in second.json()["items"]]
    mine = await api_client.get("/activities/mine", headers=OWNER)
    assert len(mine.json()) == 2


@pytest.mark.asyncio
async def test_owner_edits_and_deletes(api_client):
    created = await api_client.post("/activities", json=_form(dates=["2031-10-01T18:30"]), headers=OWNER)
    activity_id = created.json()["items"][0]["id"]

    forbidden = await api_client.put(f"/activities/{activity_id}", json=_form(title="Mine now"), headers=BOB)
    assert forbidden.status_code == 403

    updated = await api_client.put(
        f"/activities/{activity_id}",
        json=_form(title="Pickup Hoops II", dates=["2031-11-01T18:30", "2031-11-08T18:30"]),
        headers=OWNER,
    )
    assert updated.status_code == 200
    body = updated.json()
    assert body["updated"]["id"] == activity_id
    assert body["updated"]["title"] == "Pickup Hoops II"
    assert len(body["created"]) == 1

    deleted = await api_client.delete(f"/activities/{activity_id}", headers=OWNER)
    assert deleted.status_code == 204
    missing = await api_client.get(f"/activities/{activity_id}", headers=OWNER)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_image_upload_requires_image_content_type(api_client, object_storage):
    created = await api_client.post("/activities", json=_form(dates=["2031-10-01T18:30"]), headers=OWNER)
    activity_id = created.json()["items"][0]["id"]

    rejected = await api_client.put(
        f"/activities/{activity_id}/image",
        content=b"plain text",
        headers={**OWNER, "Content-Type": "text/plain"},
    )
    assert rejected.status_code == 422
    assert rejected.json()["detail"] == "Invalid file. Please upload an image."

    accepted = await api_client.put(
        f"/activities/{activity_id}/image",
        content=b"\x89PNG fake",
        headers={**OWNER, "Content-Type": "image/png"},
    )
    assert accepted.status_code == 200
    image_ref = accepted.json()["image_ref"]
    assert image_ref.startswith(f"activities/{activity_id}/")
    assert await object_storage.exists(image_ref)


@pytest.mark.asyncio
async def test_unknown_activity_is_404(api_client):
    response = await api_client.get("/activities/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["detail"] == "activity_not_found"


@pytest.mark.asyncio
async def test_bearer_token_identifies_caller(api_client):
    from huddle.infra import jwt as jwt_helper

    token = jwt_helper.encode_access({"sub": "owner-1", "name": "Olivia"})
    response = await api_client.post(
        "/activities",
        json=_form(dates=["2031-10-01T18:30"]),
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 201
    assert response.json()["items"][0]["owner_id"] == "owner-1"

    bad = await api_client.get("/activities/mine", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
