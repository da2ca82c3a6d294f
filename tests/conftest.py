"""Shared pytest fixtures for payment reconciliation tests."""

from __future__ import annotations

import os
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from solders.pubkey import Pubkey

from chainpay.application.payments.use_cases.amount_matcher import AmountMatcher
from chainpay.application.payments.use_cases.claim_arbiter import ClaimArbiter
from chainpay.application.payments.use_cases.ledger_scanner import LedgerScanner
from chainpay.application.payments.use_cases.reconciliation import (
    PaymentReconciliationService,
)
from chainpay.application.payments.use_cases.transaction_verifier import (
    TransactionVerifier,
)
from chainpay.domain.payments.entities import PaymentAsset, PaymentIntent
from chainpay.infrastructure.database import DatabaseClient
from chainpay.infrastructure.storage import RedisKeyValueStore
from tests.fixtures import (
    build_intent,
    InMemoryPaymentIntentRepository,
    IntentFactory,
    TestEligibilityGate,
    TestFulfillmentProvider,
    TestLedgerClient,
    TestRateLimiter,
)


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add command-line options for race condition tests."""
    parser.addoption(
        "--race-iterations",
        type=int,
        default=50,
        help="Number of iterations to run for race condition tests (default: 50)",
    )


@pytest.fixture
def receiving_address() -> str:
    return str(Pubkey.new_unique())


@pytest.fixture
def sender_address() -> str:
    return str(Pubkey.new_unique())


@pytest.fixture
def stable_mints() -> dict[PaymentAsset, str]:
    return {
        PaymentAsset.STABLE_A: str(Pubkey.new_unique()),
        PaymentAsset.STABLE_B: str(Pubkey.new_unique()),
    }


@pytest.fixture
def ledger_client() -> TestLedgerClient:
    return TestLedgerClient()


@pytest.fixture
async def payment_intent_repository() -> AsyncGenerator[
    InMemoryPaymentIntentRepository, None
]:
    """Create an in-memory payment intent repository."""
    repo = InMemoryPaymentIntentRepository()
    await repo.initialize()
    yield repo
    repo.clear()


@pytest.fixture
def ledger_scanner(
    ledger_client: TestLedgerClient,
    receiving_address: str,
    stable_mints: dict[PaymentAsset, str],
) -> LedgerScanner:
    return LedgerScanner(ledger_client, receiving_address, stable_mints)


@pytest.fixture
def transaction_verifier(
    ledger_client: TestLedgerClient,
    receiving_address: str,
    stable_mints: dict[PaymentAsset, str],
) -> TransactionVerifier:
    return TransactionVerifier(ledger_client, receiving_address, stable_mints)


@pytest.fixture
def fulfillment_provider() -> TestFulfillmentProvider:
    return TestFulfillmentProvider()


@pytest.fixture
def eligibility_gate() -> TestEligibilityGate:
    return TestEligibilityGate()


@pytest.fixture
def rate_limiter() -> TestRateLimiter:
    return TestRateLimiter()


@pytest.fixture
def reconciliation_service(
    payment_intent_repository: InMemoryPaymentIntentRepository,
    ledger_scanner: LedgerScanner,
    transaction_verifier: TransactionVerifier,
    fulfillment_provider: TestFulfillmentProvider,
    eligibility_gate: TestEligibilityGate,
    rate_limiter: TestRateLimiter,
) -> PaymentReconciliationService:
    return PaymentReconciliationService(
        payment_intent_repository=payment_intent_repository,
        ledger_scanner=ledger_scanner,
        amount_matcher=AmountMatcher(payment_intent_repository),
        transaction_verifier=transaction_verifier,
        claim_arbiter=ClaimArbiter(payment_intent_repository),
        fulfillment_provider=fulfillment_provider,
        eligibility_gate=eligibility_gate,
        rate_limiter=rate_limiter,
    )


@pytest.fixture
def make_intent(
    payment_intent_repository: InMemoryPaymentIntentRepository,
) -> IntentFactory:
    """Create and persist an intent; accepts the same options as ``build_intent``."""

    async def _make(**kwargs: Any) -> PaymentIntent:
        return await payment_intent_repository.create(build_intent(**kwargs))

    return _make


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    __test__ = False

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest_asyncio.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a Redis database client for testing.

    Uses database 15 by default, or TEST_REDIS_URL if set.
    Falls back to localhost:6379/15 if not specified.
    """
    import warnings

    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    settings = TestDatabaseSettings(database_url=test_redis_url)
    client = DatabaseClient(settings)
    client.initialize_database()

    # Test connection
    try:
        async with client.get_connection() as conn:
            await conn.ping()
    except Exception as e:
        warnings.warn(
            f"Redis not available at {test_redis_url}: {e}. "
            "Tests requiring Redis will be skipped. "
            "Start Redis with: docker run -p 6379:6379 redis",
            UserWarning,
        )
        pytest.skip(f"Redis not available: {e}")

    yield client

    # Cleanup: flush test database
    try:
        async with client.get_connection() as conn:
            await conn.flushdb()
    except Exception:
        pass  # Ignore cleanup errors
    await client.close()


@pytest_asyncio.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store for testing."""
    return RedisKeyValueStore(redis_db_client)
