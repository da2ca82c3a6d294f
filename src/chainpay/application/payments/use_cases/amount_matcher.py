"""Scan-time matching of candidate transfers against a pending intent.

The band functions are pure and can be tested in isolation; ``AmountMatcher``
adds the one lookup that needs storage (skipping already-claimed signatures).
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import AsyncIterator, Iterable, Optional

from ....domain.errors import AmountMismatch, TimingMismatch
from ....domain.payments.entities import (
    CandidateTransfer,
    PaymentAsset,
    PaymentIntent,
    PaymentPurpose,
)
from ....domain.payments.payment_intent_repository import PaymentIntentRepository

logger = logging.getLogger(__name__)

MATCH_WINDOW_SECONDS = 300

# Fixed issuance range for the native asset, in SOL
ISSUE_NATIVE_MIN = Decimal("0.045")
ISSUE_NATIVE_MAX = Decimal("1.0")

SMALL_NATIVE_THRESHOLD = Decimal("0.05")

# Strict band applied by the verifier, independent of purpose
STRICT_BAND = (Decimal("0.95"), Decimal("1.05"))


def tolerance_band(
    purpose: PaymentPurpose, asset: PaymentAsset, expected_amount: Decimal
) -> tuple[Decimal, Decimal]:
    """Inclusive ``(min, max)`` received amount accepted at scan time."""
    if purpose is PaymentPurpose.ISSUE:
        if asset.is_stable:
            low, high = Decimal("0.90"), Decimal("1.10")
        else:
            # Absolute floor/ceiling: native pricing drifts too much for a ratio
            return ISSUE_NATIVE_MIN, ISSUE_NATIVE_MAX
    elif purpose is PaymentPurpose.FUND:
        if asset.is_stable:
            low, high = Decimal("0.95"), Decimal("1.05")
        elif expected_amount < SMALL_NATIVE_THRESHOLD:
            low, high = Decimal("0.70"), Decimal("1.30")
        else:
            low, high = Decimal("0.80"), Decimal("1.20")
    elif asset.is_stable:
        low, high = Decimal("0.95"), Decimal("1.05")
    else:
        low, high = Decimal("0.80"), Decimal("1.20")
    return expected_amount * low, expected_amount * high


def amount_matches(intent: PaymentIntent, amount: Decimal) -> bool:
    low, high = tolerance_band(intent.purpose, intent.asset, intent.expected_amount)
    return low <= amount <= high


def time_matches(
    intent: PaymentIntent, timestamp: int, window_seconds: int = MATCH_WINDOW_SECONDS
) -> bool:
    """True when ``timestamp`` is within the window of creation, either direction."""
    return abs(timestamp - intent.created_at.timestamp()) <= window_seconds


def within_strict_band(expected_amount: Decimal, actual_amount: Decimal) -> bool:
    low, high = STRICT_BAND
    return expected_amount * low <= actual_amount <= expected_amount * high


class AmountMatcher:
    """Shortlists the transfer most likely to satisfy an intent."""

    def __init__(
        self,
        payment_intent_repository: PaymentIntentRepository,
        *,
        window_seconds: int = MATCH_WINDOW_SECONDS,
    ):
        self.payment_intent_repository = payment_intent_repository
        self.window_seconds = window_seconds

    def check(self, intent: PaymentIntent, candidate: CandidateTransfer) -> None:
        """Raise when ``candidate`` cannot be a payment for ``intent``.

        Raises:
            AmountMismatch: Amount is outside the scan band.
            TimingMismatch: Amount fits but the transfer is outside the window.
        """
        if not amount_matches(intent, candidate.amount):
            raise AmountMismatch(
                f"Received {candidate.amount}, outside the band for {intent.expected_amount}"
            )
        if not time_matches(intent, candidate.timestamp, self.window_seconds):
            raise TimingMismatch(
                f"Transfer is more than {self.window_seconds}s from payment creation"
            )

    async def iter_matches(
        self, intent: PaymentIntent, candidates: Iterable[CandidateTransfer]
    ) -> AsyncIterator[CandidateTransfer]:
        """Yield every qualifying candidate, in scanner order.

        Mismatched candidates are skipped, never raised.
        """
        for candidate in candidates:
            try:
                self.check(intent, candidate)
            except TimingMismatch:
                logger.debug(
                    "Amount matched but timestamp outside window",
                    extra={"intent_id": str(intent.id), "signature": candidate.signature},
                )
                continue
            except AmountMismatch:
                continue

            owner = await self.payment_intent_repository.get_signature_owner(
                candidate.signature
            )
            if owner is not None and owner != str(intent.id):
                logger.info(
                    "Skipping candidate already claimed by another payment",
                    extra={
                        "intent_id": str(intent.id),
                        "signature": candidate.signature,
                        "owner": owner,
                    },
                )
                continue

            yield candidate

    async def match(
        self, intent: PaymentIntent, candidates: Iterable[CandidateTransfer]
    ) -> Optional[CandidateTransfer]:
        """First qualifying candidate, or None."""
        async for candidate in self.iter_matches(intent, candidates):
            return candidate
        return None
