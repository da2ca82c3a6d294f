"""In-memory repository implementations for testing."""

from __future__ import annotations

from chainpay.infrastructure.payments.payment_intent_repository_impl import (
    PaymentIntentRepositoryImpl,
)
from chainpay.infrastructure.scripts import PAYMENT_SCRIPTS

from .in_memory_storage import InMemoryKeyValueStore


async def _register_payment_scripts(store: InMemoryKeyValueStore) -> None:
    """Register payment Lua scripts in the in-memory store."""
    for name, script in PAYMENT_SCRIPTS.items():
        await store.register_script(name, script)


class InMemoryPaymentIntentRepository(PaymentIntentRepositoryImpl):
    """In-memory payment intent repository for testing."""

    def __init__(self) -> None:
        store = InMemoryKeyValueStore()
        super().__init__(store)
        self._store = store
        # Scripts will be registered when needed (async)

    async def initialize(self) -> None:
        """Initialize the repository by registering scripts."""
        await _register_payment_scripts(self._store)

    def clear(self) -> None:
        """Clear all data (useful for test teardown)."""
        self._store.clear()
