"""Domain-specific exceptions."""

from __future__ import annotations

from typing import Optional


class PaymentError(Exception):
    """Base class for payment reconciliation failures.

    Every subclass carries a stable machine-readable ``code`` so the API layer
    can report it without parsing messages.
    """

    code = "PAYMENT_ERROR"

    def __init__(self, message: str, *, status: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class NotFound(PaymentError):
    """Raised when a payment intent lookup fails."""

    code = "NOT_FOUND"


class Expired(PaymentError):
    """Raised when an intent is used after its deadline."""

    code = "EXPIRED"


class AlreadyProcessed(PaymentError):
    """Raised when the flow is re-invoked on an intent that reached a terminal state."""

    code = "ALREADY_PROCESSED"


class AmountMismatch(PaymentError):
    """Raised when the received amount falls outside the accepted band."""

    code = "AMOUNT_MISMATCH"


class TimingMismatch(PaymentError):
    """Raised when a transfer is too far from the intent creation time."""

    code = "TIMING_MISMATCH"


class AlreadyClaimed(PaymentError):
    """Raised when a signature is already bound to another intent."""

    code = "ALREADY_CLAIMED"


class EligibilityRejected(PaymentError):
    """Raised when the issuance eligibility gate rejects the sender."""

    code = "ELIGIBILITY_REJECTED"


class UpstreamUnavailable(PaymentError):
    """Raised when a ledger, RPC or collaborator call fails."""

    code = "UPSTREAM_UNAVAILABLE"


class VerificationRejected(PaymentError):
    """Raised when strict verification rejects a transaction for a reason other than amount."""

    code = "VERIFICATION_FAILED"


class InvalidTransition(PaymentError):
    """Raised when a status change is not allowed by the state machine."""

    code = "INVALID_TRANSITION"


class FulfillmentFailed(PaymentError):
    """Raised when card issuance or funding fails after verification."""

    code = "FULFILLMENT_FAILED"


class FulfillmentInProgress(PaymentError):
    """Raised when another request is already issuing or funding the card."""

    code = "FULFILLMENT_IN_PROGRESS"


class RateLimited(PaymentError):
    """Raised when a caller exceeds the verification attempt budget."""

    code = "RATE_LIMITED"
