"""Exclusive binding of a transaction signature to one payment intent."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from ....domain.payments.entities import ClaimFailure, ClaimResult
from ....domain.payments.payment_intent_repository import PaymentIntentRepository

logger = logging.getLogger(__name__)

_FAILURES = {
    0: ClaimFailure.INVALID_STATE,
    2: ClaimFailure.NOT_FOUND,
    3: ClaimFailure.ALREADY_CLAIMED,
    4: ClaimFailure.EXPIRED,
}


class ClaimArbiter:
    """Turns repository claim codes into a ``ClaimResult``.

    The repository performs the check-and-write in one atomic step, so at most
    one intent ever holds a given signature no matter how many processes race.
    """

    def __init__(self, payment_intent_repository: PaymentIntentRepository):
        self.payment_intent_repository = payment_intent_repository

    async def claim(
        self,
        intent_id: UUID,
        signature: str,
        counterparty: str,
        *,
        now: Optional[datetime] = None,
    ) -> ClaimResult:
        now = now or datetime.now(timezone.utc)
        code, intent = await self.payment_intent_repository.claim_signature(
            intent_id, signature, counterparty, now=now
        )

        if code == 1:
            logger.info(
                "Signature claimed",
                extra={"intent_id": str(intent_id), "signature": signature},
            )
            return ClaimResult(success=True, intent=intent)

        reason = _FAILURES.get(code)
        if reason is None:
            raise RuntimeError(f"Unexpected claim status code: {code}")

        logger.info(
            "Signature claim refused",
            extra={
                "intent_id": str(intent_id),
                "signature": signature,
                "reason": reason.value,
            },
        )
        return ClaimResult(success=False, reason=reason, intent=intent)
