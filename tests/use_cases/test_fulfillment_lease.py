"""Use case tests for the fulfilment lease on verified payment intents."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from chainpay.application.payments.use_cases.claim_arbiter import ClaimArbiter
from chainpay.domain.payments.entities import PaymentIntent
from tests.fixtures import InMemoryPaymentIntentRepository, IntentFactory
from tests.fixtures.test_ledger_client import make_signature

SENDER = "Sender1111111111111111111111111111111111111"


@pytest.fixture
async def verified_intent(
    make_intent: IntentFactory,
    payment_intent_repository: InMemoryPaymentIntentRepository,
) -> PaymentIntent:
    intent = await make_intent()
    result = await ClaimArbiter(payment_intent_repository).claim(
        intent.id, make_signature("leased"), SENDER
    )
    assert result.intent is not None
    return result.intent


@pytest.mark.asyncio
async def test_only_one_caller_gets_the_lease(
    verified_intent: PaymentIntent,
    payment_intent_repository: InMemoryPaymentIntentRepository,
) -> None:
    # When: Several callers ask for the lease at once
    results = await asyncio.gather(
        *(
            payment_intent_repository.acquire_fulfillment_lease(
                verified_intent.id, f"lease-{i}", ttl_seconds=60
            )
            for i in range(5)
        )
    )

    # Then
    codes = sorted(code for code, _ in results)
    assert codes == [1, 3, 3, 3, 3]
    assert all(intent is not None for _, intent in results)


@pytest.mark.asyncio
async def test_release_by_other_holder_keeps_lease(
    verified_intent: PaymentIntent,
    payment_intent_repository: InMemoryPaymentIntentRepository,
) -> None:
    await payment_intent_repository.acquire_fulfillment_lease(
        verified_intent.id, "owner", ttl_seconds=60
    )

    await payment_intent_repository.release_fulfillment_lease(
        verified_intent.id, "intruder"
    )
    code, _ = await payment_intent_repository.acquire_fulfillment_lease(
        verified_intent.id, "second", ttl_seconds=60
    )
    assert code == 3

    await payment_intent_repository.release_fulfillment_lease(
        verified_intent.id, "owner"
    )
    code, _ = await payment_intent_repository.acquire_fulfillment_lease(
        verified_intent.id, "second", ttl_seconds=60
    )
    assert code == 1


@pytest.mark.asyncio
async def test_lease_expires_on_its_own(
    verified_intent: PaymentIntent,
    payment_intent_repository: InMemoryPaymentIntentRepository,
) -> None:
    await payment_intent_repository.acquire_fulfillment_lease(
        verified_intent.id, "crashed", ttl_seconds=0.01
    )

    await asyncio.sleep(0.05)

    code, _ = await payment_intent_repository.acquire_fulfillment_lease(
        verified_intent.id, "next", ttl_seconds=60
    )
    assert code == 1


@pytest.mark.asyncio
async def test_lease_requires_verified_intent(
    make_intent: IntentFactory,
    payment_intent_repository: InMemoryPaymentIntentRepository,
) -> None:
    pending = await make_intent()

    code, current = await payment_intent_repository.acquire_fulfillment_lease(
        pending.id, "early", ttl_seconds=60
    )
    assert code == 0
    assert current is not None
    assert current.id == pending.id

    code, current = await payment_intent_repository.acquire_fulfillment_lease(
        uuid4(), "ghost", ttl_seconds=60
    )
    assert code == 2
    assert current is None
