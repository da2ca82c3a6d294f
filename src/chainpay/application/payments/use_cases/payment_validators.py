"""Pure validation functions for payment intent creation and verification.

These functions contain business logic validation rules that can be tested
in isolation without dependencies on repositories or infrastructure.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from ....domain.payments.entities import PaymentAsset, PaymentIntent, PaymentPurpose
from .amount_matcher import ISSUE_NATIVE_MAX, ISSUE_NATIVE_MIN

MIN_PAYMENT_USD = Decimal(1)
MAX_PAYMENT_USD = Decimal(10000)
MIN_FUND_USD = Decimal(10)

NATIVE_AMOUNT_QUANTUM = Decimal("0.000001")


def validate_payment_request(
    amount_usd: Decimal,
    purpose: PaymentPurpose,
    *,
    card_holder_name: Optional[str] = None,
    target_card_id: Optional[str] = None,
) -> None:
    """Validate creation rules. Pure function.

    Raises:
        ValueError: If the amount is out of range or a purpose-specific field is missing.
    """
    if amount_usd < MIN_PAYMENT_USD or amount_usd > MAX_PAYMENT_USD:
        raise ValueError(
            f"Amount must be between ${MIN_PAYMENT_USD} and ${MAX_PAYMENT_USD}"
        )

    if purpose is PaymentPurpose.FUND:
        if amount_usd < MIN_FUND_USD:
            raise ValueError(f"Minimum top-up amount is ${MIN_FUND_USD}")
        if not target_card_id:
            raise ValueError("Card ID is required for top-up")

    if purpose is PaymentPurpose.ISSUE and not (card_holder_name or "").strip():
        raise ValueError("Name on card is required")


def compute_expected_amount(
    amount_usd: Decimal,
    asset: PaymentAsset,
    native_price_usd: Optional[Decimal],
    buffer: Decimal = Decimal("1.02"),
) -> Decimal:
    """Amount the user must send, in the asset's own units.

    Stable assets are pegged one-to-one. Native amounts carry a small buffer
    for price movement and are rounded to 6 decimals.
    """
    if asset.is_stable:
        return amount_usd
    if not native_price_usd or native_price_usd <= 0:
        raise ValueError("A positive native price is required for native payments")
    return (amount_usd / native_price_usd * buffer).quantize(
        NATIVE_AMOUNT_QUANTUM, rounding=ROUND_HALF_UP
    )


def strict_reference(intent: PaymentIntent, observed_amount: Optional[Decimal]) -> Decimal:
    """Expected amount the strict 95%-105% check is measured against.

    Native issuance accepts any amount in a fixed range, so a transfer inside
    that range becomes its own reference.
    """
    if (
        intent.purpose is PaymentPurpose.ISSUE
        and intent.asset is PaymentAsset.NATIVE
        and observed_amount is not None
        and ISSUE_NATIVE_MIN <= observed_amount <= ISSUE_NATIVE_MAX
    ):
        return observed_amount
    return intent.expected_amount
