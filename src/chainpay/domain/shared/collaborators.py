"""Protocols for the collaborators that sit outside the reconciliation core."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    # Avoid circular imports by only importing types during type checking
    from ..payments.entities import EligibilityResult, PaymentIntent


class EligibilityGateProtocol(Protocol):
    """Issuance-only check that the paying wallet holds the required token."""

    @property
    def enabled(self) -> bool:
        """False when no holding is required; the sender is then never looked up."""
        ...

    async def check(self, wallet_address: str) -> EligibilityResult:
        """Raises ``UpstreamUnavailable`` if the holding cannot be determined."""
        ...


class FulfillmentProviderProtocol(Protocol):
    """Virtual card provider used once a payment is proven."""

    async def issue_card(self, intent: PaymentIntent) -> str:
        """Create a card funded from ``intent`` and return the provider card id."""
        ...

    async def fund_card(self, intent: PaymentIntent) -> Decimal:
        """Top up ``intent.target_card_id`` and return the new balance."""
        ...


class PriceOracleProtocol(Protocol):
    async def get_native_price_usd(self) -> Decimal:
        ...


class RateLimiterProtocol(Protocol):
    """Best-effort shared attempt counter."""

    async def hit(self, key: str) -> bool:
        """Count one attempt for ``key``; False when the budget is exhausted."""
        ...
