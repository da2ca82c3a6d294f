"""Payment domain entities: PaymentIntent and the reconciliation value objects."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, EmailStr, Field, field_serializer

from ..shared.serializers import CommonSerializersMixin


class PaymentPurpose(str, Enum):
    """Fulfillment action that follows a successful claim."""

    ISSUE = "ISSUE"
    FUND = "FUND"


class PaymentAsset(str, Enum):
    """Asset the user is expected to send."""

    NATIVE = "NATIVE"
    STABLE_A = "STABLE_A"
    STABLE_B = "STABLE_B"

    @property
    def is_stable(self) -> bool:
        return self is not PaymentAsset.NATIVE


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMING = "CONFIRMING"
    VERIFIED = "VERIFIED"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"


class PaymentIntent(CommonSerializersMixin, BaseModel):
    """A user's promise to send a specific amount of an asset to the service.

    ``claimed_signature`` is the one field with a cross-record invariant: once
    set it never changes and no other intent may carry the same value. The
    repository enforces that at the storage level.
    """

    id: UUID = Field(default_factory=uuid4)
    purpose: PaymentPurpose
    asset: PaymentAsset
    expected_amount: Decimal = Field(..., gt=0)
    expected_usd: Decimal = Field(..., gt=0)
    native_price_usd: Optional[Decimal] = None
    status: PaymentStatus = PaymentStatus.PENDING
    claimed_signature: Optional[str] = None
    counterparty_address: Optional[str] = None

    card_holder_name: Optional[str] = Field(None, max_length=100)
    card_holder_email: Optional[EmailStr] = None
    target_card_id: Optional[str] = None
    topup_amount_usd: Optional[Decimal] = None
    issued_card_id: Optional[str] = None
    failure_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime
    updated_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_serializer("expires_at")
    def serialize_expires_at(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("updated_at", "verified_at", "completed_at")
    def serialize_optional_datetime(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once ``now`` is strictly past the deadline."""
        now = now or datetime.now(timezone.utc)
        return now > self.expires_at

    @property
    def fulfillment_amount_usd(self) -> Decimal:
        """Amount the card is issued or funded with (fees excluded when known)."""
        return self.topup_amount_usd or self.expected_usd


class CandidateTransfer(BaseModel):
    """An incoming transfer tentatively believed to satisfy an intent."""

    signature: str
    amount: Decimal
    counterparty: str
    timestamp: int = Field(..., description="Block time, unix seconds")


class VerificationFailure(str, Enum):
    TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    ACCOUNTS_UNRESOLVED = "ACCOUNTS_UNRESOLVED"
    NO_FUNDS_RECEIVED = "NO_FUNDS_RECEIVED"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    COUNTERPARTY_MISMATCH = "COUNTERPARTY_MISMATCH"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"


class VerificationResult(BaseModel):
    verified: bool
    actual_amount: Optional[Decimal] = None
    counterparty: Optional[str] = None
    reason: Optional[VerificationFailure] = None
    detail: Optional[str] = None


class ClaimFailure(str, Enum):
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    INVALID_STATE = "INVALID_STATE"


class ClaimResult(BaseModel):
    success: bool
    reason: Optional[ClaimFailure] = None
    intent: Optional[PaymentIntent] = None


class EligibilityResult(BaseModel):
    """Outcome of the issuance token-holding check."""

    eligible: bool
    balance: Decimal
    required: Decimal
    token_mint: str
