"""Data Transfer Objects for the payments application layer.

The HTTP contract is camelCase; fields stay snake_case in Python and are
exposed through aliases.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_serializer
from pydantic.alias_generators import to_camel

from ...domain.payments.entities import (
    PaymentAsset,
    PaymentIntent,
    PaymentPurpose,
    PaymentStatus,
)
from ...domain.shared.serializers import CommonSerializersMixin


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreatePaymentDTO(CamelModel):
    """DTO for creating a payment intent."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "amountUsd": "25",
                "purpose": "ISSUE",
                "asset": "NATIVE",
                "cardHolderName": "Jane Doe",
                "cardHolderEmail": "jane@example.com",
            }
        },
    )

    amount_usd: Decimal = Field(..., ge=1, le=10000)
    purpose: PaymentPurpose
    asset: PaymentAsset = PaymentAsset.NATIVE
    card_holder_name: Optional[str] = Field(None, min_length=1, max_length=100)
    card_holder_email: Optional[EmailStr] = None
    target_card_id: Optional[str] = Field(None, min_length=1, max_length=100)
    topup_amount_usd: Optional[Decimal] = Field(None, gt=0)


class PaymentResponseDTO(CommonSerializersMixin, CamelModel):
    """DTO for returning payment intent data."""

    id: UUID
    amount_usd: Decimal
    amount_sol: Decimal = Field(..., description="Expected amount in the asset's units")
    status: PaymentStatus
    purpose: PaymentPurpose
    asset: PaymentAsset
    tx_signature: Optional[str] = None
    issued_card_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    expires_at: datetime

    @field_serializer("expires_at")
    def serialize_expires_at(self, value: datetime) -> str:
        return value.isoformat()

    @classmethod
    def from_intent(cls, intent: PaymentIntent) -> "PaymentResponseDTO":
        return cls(
            id=intent.id,
            amount_usd=intent.expected_usd,
            amount_sol=intent.expected_amount,
            status=intent.status,
            purpose=intent.purpose,
            asset=intent.asset,
            tx_signature=intent.claimed_signature,
            issued_card_id=intent.issued_card_id,
            failure_reason=intent.failure_reason,
            created_at=intent.created_at,
            expires_at=intent.expires_at,
        )


class CreatePaymentResponseDTO(PaymentResponseDTO):
    """Creation response; ``pay_to`` is the address the user must send to."""

    pay_to: str
    native_price_usd: Optional[Decimal] = None

    @classmethod
    def from_created(
        cls, intent: PaymentIntent, pay_to: str
    ) -> "CreatePaymentResponseDTO":
        base = dict(PaymentResponseDTO.from_intent(intent))
        return cls(**base, pay_to=pay_to, native_price_usd=intent.native_price_usd)


class VerifyPaymentRequestDTO(CamelModel):
    """DTO for the manual verification path."""

    tx_signature: str = Field(..., min_length=32, max_length=128)


class VerifyPaymentResponseDTO(CamelModel):
    """DTO returned once a manually submitted payment is verified and fulfilled."""

    success: bool = True
    message: str
    payment: PaymentResponseDTO
    card_id: Optional[str] = None
    new_balance: Optional[Decimal] = None


class AutoVerifyRequestDTO(CamelModel):
    """A missing id is answered with a NOT_FOUND body rather than a 422."""

    payment_id: Optional[str] = None


class AutoVerifyResponseDTO(CamelModel):
    """Polling result. ``success`` carries the outcome; HTTP status is always 200."""

    success: bool
    message: str
    code: Optional[str] = None
    status: Optional[PaymentStatus] = None
    tx_signature: Optional[str] = None
    amount: Optional[Decimal] = None
