"""Test fixtures for in-memory implementations."""

from .in_memory_storage import InMemoryKeyValueStore
from .in_memory_repositories import InMemoryPaymentIntentRepository
from .test_collaborators import (
    TestEligibilityGate,
    TestFulfillmentProvider,
    TestPriceOracle,
    TestRateLimiter,
)
from .test_ledger_client import TestLedgerClient
from .intents import IntentFactory, build_intent

__all__ = [
    "build_intent",
    "IntentFactory",
    "InMemoryKeyValueStore",
    "InMemoryPaymentIntentRepository",
    "TestEligibilityGate",
    "TestFulfillmentProvider",
    "TestLedgerClient",
    "TestPriceOracle",
    "TestRateLimiter",
]
