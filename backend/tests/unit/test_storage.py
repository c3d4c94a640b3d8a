import pytest

from huddle.infra.storage import InMemoryObjectStorage, StorageError, generate_key


def test_generated_keys_use_prefix_ulid_and_extension():
    key = generate_key("/activities/abc/", "image/png")

    prefix, name = key.rsplit("/", 1)
    assert prefix == "activities/abc"
    assert name.endswith(".png")
    assert len(name) == 26 + len(".png")
    assert generate_key("activities/abc", "image/png") != key


@pytest.mark.asyncio
async def test_remove_missing_object_raises():
    backend = InMemoryObjectStorage(bucket="test")
    ref = await backend.put(b"data", content_type="image/jpeg", prefix="activities/x")

    await backend.remove(ref)
    with pytest.raises(StorageError):
        await backend.remove(ref)
