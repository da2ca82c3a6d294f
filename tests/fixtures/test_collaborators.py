"""Configurable stand-ins for the card provider, eligibility gate and price oracle."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Optional

from chainpay.domain.errors import UpstreamUnavailable
from chainpay.domain.payments.entities import EligibilityResult, PaymentIntent


class TestFulfillmentProvider:
    """Records card calls; raises ``error`` when set and waits ``delay`` seconds first."""

    __test__ = False

    def __init__(self, card_id: str = "card_123", new_balance: Decimal = Decimal("50")):
        self.card_id = card_id
        self.new_balance = new_balance
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.issued: list[PaymentIntent] = []
        self.funded: list[PaymentIntent] = []

    async def issue_card(self, intent: PaymentIntent) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.issued.append(intent)
        return self.card_id

    async def fund_card(self, intent: PaymentIntent) -> Decimal:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.funded.append(intent)
        return self.new_balance


class TestEligibilityGate:
    __test__ = False

    def __init__(
        self, eligible: bool = True, *, unavailable: bool = False, enabled: bool = True
    ):
        self.eligible = eligible
        self.unavailable = unavailable
        self.enabled = enabled
        self.checked: list[str] = []

    async def check(self, wallet_address: str) -> EligibilityResult:
        self.checked.append(wallet_address)
        if self.unavailable:
            raise UpstreamUnavailable("Token holdings lookup failed")
        return EligibilityResult(
            eligible=self.eligible,
            balance=Decimal(2_000_000) if self.eligible else Decimal(0),
            required=Decimal(2_000_000),
            token_mint="GateMint",
        )


class TestPriceOracle:
    __test__ = False

    def __init__(self, price: Decimal = Decimal(100)):
        self.price = price
        self.calls = 0

    async def get_native_price_usd(self) -> Decimal:
        self.calls += 1
        return self.price


class TestRateLimiter:
    """Allows the first ``limit`` hits per key."""

    __test__ = False

    def __init__(self, limit: int = 1000):
        self.limit = limit
        self.hits: dict[str, int] = {}

    async def hit(self, key: str) -> bool:
        self.hits[key] = self.hits.get(key, 0) + 1
        return self.hits[key] <= self.limit
