"""Orchestration of the reconciliation pipeline for the three payment endpoints.

Every call is an independent unit of work. No in-process lock guards an
intent: status changes are compare-and-set in storage. The card provider is
called only by the holder of a storage-level fulfilment lease.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import UUID, uuid4

from ....domain.errors import (
    AlreadyClaimed,
    AlreadyProcessed,
    AmountMismatch,
    EligibilityRejected,
    Expired,
    FulfillmentFailed,
    FulfillmentInProgress,
    NotFound,
    PaymentError,
    RateLimited,
    UpstreamUnavailable,
    VerificationRejected,
)
from ....domain.payments.entities import (
    CandidateTransfer,
    ClaimFailure,
    PaymentIntent,
    PaymentPurpose,
    PaymentStatus,
    VerificationFailure,
    VerificationResult,
)
from ....domain.payments.payment_intent_repository import PaymentIntentRepository
from ....domain.payments.state_machine import CLAIMABLE_STATES, ensure_transition
from ....domain.shared import (
    EligibilityGateProtocol,
    FulfillmentProviderProtocol,
    RateLimiterProtocol,
)
from ..dtos import AutoVerifyResponseDTO, PaymentResponseDTO, VerifyPaymentResponseDTO
from .amount_matcher import AmountMatcher
from .claim_arbiter import ClaimArbiter
from .ledger_scanner import UNKNOWN_COUNTERPARTY, LedgerScanner
from .payment_validators import strict_reference
from .transaction_verifier import TransactionVerifier

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "No matching payment found. Please wait a moment and try again."

# Verifier outcomes that mean "try again later" rather than "this payment is wrong"
_TRANSIENT_FAILURES = frozenset(
    {VerificationFailure.UPSTREAM_UNAVAILABLE, VerificationFailure.TRANSACTION_NOT_FOUND}
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _rejection_error(result: VerificationResult) -> PaymentError:
    message = result.detail or "Payment verification failed"
    if result.reason is VerificationFailure.AMOUNT_MISMATCH:
        return AmountMismatch(message)
    if result.reason is VerificationFailure.UPSTREAM_UNAVAILABLE:
        return UpstreamUnavailable(message)
    return VerificationRejected(message)


class PaymentReconciliationService:
    """Runs the scan, match, verify, claim and fulfil steps for payment intents."""

    def __init__(
        self,
        payment_intent_repository: PaymentIntentRepository,
        ledger_scanner: LedgerScanner,
        amount_matcher: AmountMatcher,
        transaction_verifier: TransactionVerifier,
        claim_arbiter: ClaimArbiter,
        fulfillment_provider: FulfillmentProviderProtocol,
        *,
        eligibility_gate: Optional[EligibilityGateProtocol] = None,
        rate_limiter: Optional[RateLimiterProtocol] = None,
        fulfillment_lease_seconds: float = 120,
    ):
        self.payment_intent_repository = payment_intent_repository
        self.ledger_scanner = ledger_scanner
        self.amount_matcher = amount_matcher
        self.transaction_verifier = transaction_verifier
        self.claim_arbiter = claim_arbiter
        self.fulfillment_provider = fulfillment_provider
        self.eligibility_gate = eligibility_gate
        self.rate_limiter = rate_limiter
        self.fulfillment_lease_seconds = fulfillment_lease_seconds

    # ---------- Shared helpers ----------

    async def _load(self, intent_id: UUID) -> PaymentIntent:
        intent = await self.payment_intent_repository.get_by_id(intent_id)
        if intent is None:
            raise NotFound("Payment not found")
        return intent

    async def _apply_expiry(self, intent: PaymentIntent, now: datetime) -> PaymentIntent:
        """Move a non-terminal intent past its deadline to EXPIRED."""
        if intent.status not in CLAIMABLE_STATES or not intent.is_expired(now):
            return intent

        code, current = await self.payment_intent_repository.transition(
            intent.id, PaymentStatus.EXPIRED, now=now
        )
        if code == 1:
            logger.info("Payment intent expired", extra={"intent_id": str(intent.id)})
        return current or intent

    async def _move(
        self,
        intent: PaymentIntent,
        target: PaymentStatus,
        now: datetime,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> PaymentIntent:
        ensure_transition(intent.status, target)
        code, current = await self.payment_intent_repository.transition(
            intent.id, target, now=now, fields=fields
        )
        if code == 2 or current is None:
            raise NotFound("Payment not found")
        if code == 0:
            logger.info(
                "Status change lost to a concurrent writer",
                extra={
                    "intent_id": str(intent.id),
                    "target": target.value,
                    "current": current.status.value,
                },
            )
        return current

    async def _fail(
        self, intent: PaymentIntent, reason: str, now: datetime
    ) -> PaymentIntent:
        logger.warning(
            "Payment intent failed",
            extra={"intent_id": str(intent.id), "reason": reason},
        )
        return await self._move(
            intent, PaymentStatus.FAILED, now, fields={"failure_reason": reason}
        )

    async def _within_budget(self, intent_id: UUID) -> bool:
        if self.rate_limiter is None:
            return True
        return await self.rate_limiter.hit(f"verify:{intent_id}")

    async def _is_eligible(self, intent: PaymentIntent, wallet: Optional[str]) -> bool:
        """Issuance gate. Raises UpstreamUnavailable when holdings cannot be read."""
        if (
            intent.purpose is not PaymentPurpose.ISSUE
            or self.eligibility_gate is None
            or not self.eligibility_gate.enabled
        ):
            return True
        if not wallet or wallet == UNKNOWN_COUNTERPARTY:
            raise UpstreamUnavailable("Could not determine payment sender wallet address")

        result = await self.eligibility_gate.check(wallet)
        if not result.eligible:
            logger.info(
                "Payment sender is not eligible for issuance",
                extra={
                    "intent_id": str(intent.id),
                    "wallet": wallet,
                    "balance": str(result.balance),
                    "required": str(result.required),
                },
            )
        return result.eligible

    # ---------- GET /payments/{id} ----------

    async def get_payment(self, intent_id: UUID) -> PaymentResponseDTO:
        intent = await self._load(intent_id)
        intent = await self._apply_expiry(intent, _now())
        return PaymentResponseDTO.from_intent(intent)

    # ---------- POST /payments/auto-verify ----------

    async def auto_verify(self, payment_id: str) -> AutoVerifyResponseDTO:
        """Look for a matching on-chain transfer and claim it.

        Never raises for expected outcomes; every result is described by the
        returned DTO. Fulfillment is left to the manual path.
        """
        try:
            intent_id = UUID(payment_id)
        except ValueError:
            return AutoVerifyResponseDTO(
                success=False, message="Payment not found", code=NotFound.code
            )

        intent = await self.payment_intent_repository.get_by_id(intent_id)
        if intent is None:
            return AutoVerifyResponseDTO(
                success=False, message="Payment not found", code=NotFound.code
            )

        if intent.status is PaymentStatus.EXPIRED:
            return AutoVerifyResponseDTO(
                success=False,
                message="Payment request has expired",
                code=Expired.code,
                status=intent.status,
            )

        if intent.status not in CLAIMABLE_STATES:
            return AutoVerifyResponseDTO(
                success=False,
                message=f"Payment already {intent.status.value.lower()}",
                code=AlreadyProcessed.code,
                status=intent.status,
                tx_signature=intent.claimed_signature,
            )

        now = _now()
        if intent.is_expired(now):
            intent = await self._apply_expiry(intent, now)
            return AutoVerifyResponseDTO(
                success=False,
                message="Payment request has expired",
                code=Expired.code,
                status=intent.status,
            )

        if not await self._within_budget(intent.id):
            return AutoVerifyResponseDTO(
                success=False,
                message="Too many verification attempts. Please wait a minute.",
                code=RateLimited.code,
                status=intent.status,
            )

        candidates = await self.ledger_scanner.scan(intent.asset)
        logger.info(
            "Auto-verify scanning candidates",
            extra={
                "intent_id": str(intent.id),
                "expected_amount": str(intent.expected_amount),
                "candidates": len(candidates),
            },
        )

        async for candidate in self.amount_matcher.iter_matches(intent, candidates):
            response = await self._settle_candidate(intent, candidate)
            if response is not None:
                return response

        return AutoVerifyResponseDTO(
            success=False, message=NO_MATCH_MESSAGE, status=intent.status
        )

    async def _settle_candidate(
        self, intent: PaymentIntent, candidate: CandidateTransfer
    ) -> Optional[AutoVerifyResponseDTO]:
        """Verify and claim one candidate. None means "keep looking"."""
        expected_counterparty = (
            candidate.counterparty
            if candidate.counterparty != UNKNOWN_COUNTERPARTY
            else None
        )
        result = await self.transaction_verifier.verify(
            candidate.signature,
            strict_reference(intent, candidate.amount),
            intent.asset,
            expected_counterparty,
        )

        if not result.verified:
            if result.reason in _TRANSIENT_FAILURES:
                return None
            error = _rejection_error(result)
            failed = await self._fail(intent, error.code, _now())
            return AutoVerifyResponseDTO(
                success=False,
                message=error.message,
                code=error.code,
                status=failed.status,
                tx_signature=candidate.signature,
                amount=result.actual_amount,
            )

        wallet = result.counterparty or candidate.counterparty
        try:
            eligible = await self._is_eligible(intent, wallet)
        except UpstreamUnavailable as e:
            logger.warning(
                "Eligibility check unavailable",
                extra={"intent_id": str(intent.id), "error": str(e)},
            )
            return None
        if not eligible:
            failed = await self._fail(intent, EligibilityRejected.code, _now())
            return AutoVerifyResponseDTO(
                success=False,
                message="Payment sender does not hold enough tokens",
                code=EligibilityRejected.code,
                status=failed.status,
            )

        claim = await self.claim_arbiter.claim(
            intent.id, candidate.signature, wallet or UNKNOWN_COUNTERPARTY
        )
        if claim.success and claim.intent is not None:
            return AutoVerifyResponseDTO(
                success=True,
                message="Payment verified successfully!",
                status=claim.intent.status,
                tx_signature=candidate.signature,
                amount=result.actual_amount,
            )

        if claim.reason is ClaimFailure.ALREADY_CLAIMED:
            return None
        if claim.reason is ClaimFailure.EXPIRED:
            expired = await self._apply_expiry(claim.intent or intent, _now())
            return AutoVerifyResponseDTO(
                success=False,
                message="Payment request has expired",
                code=Expired.code,
                status=expired.status,
            )
        if claim.reason is ClaimFailure.NOT_FOUND:
            return AutoVerifyResponseDTO(
                success=False, message="Payment not found", code=NotFound.code
            )

        current = claim.intent or intent
        return AutoVerifyResponseDTO(
            success=False,
            message=f"Payment already {current.status.value.lower()}",
            code=AlreadyProcessed.code,
            status=current.status,
            tx_signature=current.claimed_signature,
        )

    # ---------- POST /payments/{id} ----------

    async def verify_by_signature(
        self, intent_id: UUID, signature: str
    ) -> VerifyPaymentResponseDTO:
        """Verify a user-submitted signature, claim it and fulfil the intent.

        Raises:
            NotFound: Unknown intent.
            AlreadyProcessed: Intent is terminal or bound to another signature.
            Expired: Intent deadline has passed or it is already EXPIRED.
            RateLimited: Too many attempts for this intent.
            UpstreamUnavailable: Ledger or eligibility lookup failed; nothing changed.
            AmountMismatch, VerificationRejected, EligibilityRejected: Intent is now FAILED.
            AlreadyClaimed: Signature belongs to another intent.
            FulfillmentFailed: Payment is VERIFIED but the card call failed.
            FulfillmentInProgress: Another request holds the fulfilment lease.
        """
        intent = await self._load(intent_id)

        if intent.status is PaymentStatus.VERIFIED:
            if intent.claimed_signature != signature:
                raise AlreadyProcessed(
                    "Payment already verified with a different transaction",
                    status=intent.status.value,
                )
            return await self._fulfil(intent)

        if intent.status is PaymentStatus.EXPIRED:
            raise Expired("Payment request has expired", status=intent.status.value)

        if intent.status not in CLAIMABLE_STATES:
            raise AlreadyProcessed(
                f"Payment already {intent.status.value.lower()}",
                status=intent.status.value,
            )

        now = _now()
        if intent.is_expired(now):
            expired = await self._apply_expiry(intent, now)
            raise Expired("Payment request has expired", status=expired.status.value)

        if not await self._within_budget(intent.id):
            raise RateLimited(
                "Too many verification attempts. Please wait a minute.",
                status=intent.status.value,
            )

        if intent.status is PaymentStatus.PENDING:
            intent = await self._move(intent, PaymentStatus.CONFIRMING, now)
            if intent.status not in CLAIMABLE_STATES:
                raise AlreadyProcessed(
                    f"Payment already {intent.status.value.lower()}",
                    status=intent.status.value,
                )

        result = await self._verify_submitted(intent, signature)
        if not result.verified:
            error = _rejection_error(result)
            if result.reason in _TRANSIENT_FAILURES:
                error.status = intent.status.value
                raise error
            failed = await self._fail(intent, error.code, _now())
            error.status = failed.status.value
            raise error

        wallet = result.counterparty
        if not await self._is_eligible(intent, wallet):
            failed = await self._fail(intent, EligibilityRejected.code, _now())
            raise EligibilityRejected(
                "Payment sender does not hold enough tokens",
                status=failed.status.value,
            )

        claim = await self.claim_arbiter.claim(
            intent.id, signature, wallet or UNKNOWN_COUNTERPARTY
        )
        if not claim.success or claim.intent is None:
            current = claim.intent or intent
            if claim.reason is ClaimFailure.ALREADY_CLAIMED:
                raise AlreadyClaimed(
                    "Transaction already used for another payment",
                    status=current.status.value,
                )
            if claim.reason is ClaimFailure.EXPIRED:
                expired = await self._apply_expiry(current, _now())
                raise Expired("Payment request has expired", status=expired.status.value)
            if claim.reason is ClaimFailure.NOT_FOUND:
                raise NotFound("Payment not found")
            raise AlreadyProcessed(
                f"Payment already {current.status.value.lower()}",
                status=current.status.value,
            )

        return await self._fulfil(claim.intent)

    async def _verify_submitted(
        self, intent: PaymentIntent, signature: str
    ) -> VerificationResult:
        result = await self.transaction_verifier.verify(
            signature, intent.expected_amount, intent.asset
        )
        if result.reason is not VerificationFailure.AMOUNT_MISMATCH:
            return result

        # Native issuance accepts a fixed range; re-check against the observed amount
        reference = strict_reference(intent, result.actual_amount)
        if reference == intent.expected_amount:
            return result
        return await self.transaction_verifier.verify(signature, reference, intent.asset)

    async def _fulfil(self, intent: PaymentIntent) -> VerifyPaymentResponseDTO:
        """Issue or fund the card for a VERIFIED intent and complete it.

        Only the holder of the fulfilment lease calls the card provider, so
        overlapping retries of the same payment cannot fulfil it twice.
        """
        lease_id = uuid4().hex
        code, current = await self.payment_intent_repository.acquire_fulfillment_lease(
            intent.id, lease_id, ttl_seconds=self.fulfillment_lease_seconds
        )
        if code == 2 or current is None:
            raise NotFound("Payment not found")
        if code == 0:
            raise AlreadyProcessed(
                f"Payment already {current.status.value.lower()}",
                status=current.status.value,
            )
        if code == 3:
            raise FulfillmentInProgress(
                "Card fulfillment for this payment is already in progress",
                status=current.status.value,
            )

        try:
            return await self._fulfil_leased(current)
        finally:
            await self.payment_intent_repository.release_fulfillment_lease(
                intent.id, lease_id
            )

    async def _fulfil_leased(self, intent: PaymentIntent) -> VerifyPaymentResponseDTO:
        card_id: Optional[str] = None
        new_balance: Optional[Decimal] = None
        try:
            if intent.purpose is PaymentPurpose.ISSUE:
                card_id = await self.fulfillment_provider.issue_card(intent)
                fields: dict[str, Any] = {"issued_card_id": card_id}
            else:
                new_balance = await self.fulfillment_provider.fund_card(intent)
                card_id = intent.target_card_id
                fields = {}
        except (UpstreamUnavailable, FulfillmentFailed) as e:
            logger.error(
                "Fulfillment failed; payment stays verified",
                extra={"intent_id": str(intent.id), "error": str(e)},
            )
            action = "creation" if intent.purpose is PaymentPurpose.ISSUE else "funding"
            raise FulfillmentFailed(
                f"Payment verified but card {action} failed. Please retry.",
                status=PaymentStatus.VERIFIED.value,
            ) from e

        now = _now()
        fields["completed_at"] = now
        completed = await self._move(intent, PaymentStatus.COMPLETED, now, fields=fields)

        logger.info(
            "Payment completed",
            extra={
                "intent_id": str(intent.id),
                "purpose": intent.purpose.value,
                "card_id": card_id,
            },
        )
        message = (
            "Payment verified and card created successfully!"
            if intent.purpose is PaymentPurpose.ISSUE
            else "Payment verified and card funded successfully!"
        )
        return VerifyPaymentResponseDTO(
            message=message,
            payment=PaymentResponseDTO.from_intent(completed),
            card_id=card_id,
            new_balance=new_balance,
        )

    # ---------- Background writes ----------

    async def record_last_checked(self, payment_id: str) -> None:
        """Best-effort poll timestamp. Failures are logged and dropped."""
        try:
            intent_id = UUID(payment_id)
        except ValueError:
            return
        try:
            await self.payment_intent_repository.record_last_checked(intent_id, _now())
        except Exception as e:
            logger.warning(
                "Could not record last check time",
                extra={"intent_id": payment_id, "error": str(e)},
            )
