"""Use case for opening a new payment intent."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from ....domain.payments.entities import PaymentIntent
from ....domain.payments.payment_intent_repository import PaymentIntentRepository
from ....domain.shared import PriceOracleProtocol
from ..dtos import CreatePaymentDTO, CreatePaymentResponseDTO
from .ledger_scanner import LedgerScanner
from .payment_validators import compute_expected_amount, validate_payment_request

logger = logging.getLogger(__name__)


class PaymentCreationService:
    """Prices a request and stores the resulting PENDING intent."""

    def __init__(
        self,
        payment_intent_repository: PaymentIntentRepository,
        price_oracle: PriceOracleProtocol,
        ledger_scanner: LedgerScanner,
        *,
        expiry_minutes: int = 30,
        native_price_buffer: Decimal = Decimal("1.02"),
    ):
        self.payment_intent_repository = payment_intent_repository
        self.price_oracle = price_oracle
        self.ledger_scanner = ledger_scanner
        self.expiry_minutes = expiry_minutes
        self.native_price_buffer = native_price_buffer

    async def create_payment(self, dto: CreatePaymentDTO) -> CreatePaymentResponseDTO:
        validate_payment_request(
            dto.amount_usd,
            dto.purpose,
            card_holder_name=dto.card_holder_name,
            target_card_id=dto.target_card_id,
        )

        native_price: Optional[Decimal] = None
        if not dto.asset.is_stable:
            native_price = await self.price_oracle.get_native_price_usd()

        expected_amount = compute_expected_amount(
            dto.amount_usd, dto.asset, native_price, self.native_price_buffer
        )
        pay_to = self.ledger_scanner.receiving_account(dto.asset)

        now = datetime.now(timezone.utc)
        intent = PaymentIntent(
            purpose=dto.purpose,
            asset=dto.asset,
            expected_amount=expected_amount,
            expected_usd=dto.amount_usd,
            native_price_usd=native_price,
            card_holder_name=dto.card_holder_name,
            card_holder_email=dto.card_holder_email,
            target_card_id=dto.target_card_id,
            topup_amount_usd=dto.topup_amount_usd,
            created_at=now,
            expires_at=now + timedelta(minutes=self.expiry_minutes),
        )
        created = await self.payment_intent_repository.create(intent)

        logger.info(
            "Payment intent created",
            extra={
                "intent_id": str(created.id),
                "purpose": created.purpose.value,
                "asset": created.asset.value,
                "expected_amount": str(created.expected_amount),
            },
        )
        return CreatePaymentResponseDTO.from_created(created, pay_to)
