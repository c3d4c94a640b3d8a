import pytest

from huddle.domain.activities.exceptions import IdempotencyConflict, IdempotencyInProgress
from huddle.infra import idempotency

HANDLER = "activities.publish"


@pytest.mark.asyncio
async def test_second_claim_while_first_is_running_is_refused():
    assert await idempotency.begin("owner:k2", HANDLER, payload_hash="h") is None

    with pytest.raises(IdempotencyInProgress):
        await idempotency.begin("owner:k2", HANDLER, payload_hash="h")


@pytest.mark.asyncio
async def test_completed_key_replays_result():
    assert await idempotency.begin("owner:k3", HANDLER, payload_hash="h") is None
    await idempotency.complete("owner:k3", HANDLER, "id-1,id-2")

    assert await idempotency.begin("owner:k3", HANDLER, payload_hash="h") == "id-1,id-2"


@pytest.mark.asyncio
async def test_key_reused_for_other_payload_conflicts():
    await idempotency.begin("owner:k4", HANDLER, payload_hash="h1")
    await idempotency.complete("owner:k4", HANDLER, "id-1")

    with pytest.raises(IdempotencyConflict):
        await idempotency.begin("owner:k4", HANDLER, payload_hash="h2")


@pytest.mark.asyncio
async def test_released_claim_can_be_retried():
    await idempotency.begin("owner:k5", HANDLER, payload_hash="h")
    await idempotency.release("owner:k5", HANDLER)

    assert await idempotency.begin("owner:k5", HANDLER, payload_hash="h") is None


@pytest.mark.asyncio
async def test_release_keeps_completed_keys():
    await idempotency.begin("owner:k6", HANDLER, payload_hash="h")
    await idempotency.complete("owner:k6", HANDLER, "id-9")
    await idempotency.release("owner:k6", HANDLER)

    assert await idempotency.begin("owner:k6", HANDLER, payload_hash="h") == "id-9"
