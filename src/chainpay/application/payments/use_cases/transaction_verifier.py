"""Authoritative check of a single transaction against an expected payment."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from ....domain.errors import UpstreamUnavailable
from ....domain.payments.entities import (
    PaymentAsset,
    VerificationFailure,
    VerificationResult,
)
from ....domain.shared import LedgerClientProtocol
from ....infrastructure.solana.addresses import derive_associated_token_address
from .amount_matcher import within_strict_band
from .transfer_parsing import (
    native_delta,
    participants,
    primary_signer,
    token_delta,
    token_sender,
    transaction_failed,
)

logger = logging.getLogger(__name__)


def _rejected(
    reason: VerificationFailure,
    detail: str,
    *,
    actual_amount: Optional[Decimal] = None,
    counterparty: Optional[str] = None,
) -> VerificationResult:
    return VerificationResult(
        verified=False,
        reason=reason,
        detail=detail,
        actual_amount=actual_amount,
        counterparty=counterparty,
    )


class TransactionVerifier:
    """Re-fetches a transaction and applies the strict 95%-105% amount rule.

    Verification never writes anything; failures are reported in the result
    rather than raised so callers can decide whether a rejection is final.
    """

    def __init__(
        self,
        ledger_client: LedgerClientProtocol,
        receiving_address: str,
        mints: Mapping[PaymentAsset, str],
    ):
        self.ledger_client = ledger_client
        self.receiving_address = receiving_address
        self.mints = dict(mints)

    async def verify(
        self,
        signature: str,
        expected_amount: Decimal,
        asset: PaymentAsset,
        expected_counterparty: Optional[str] = None,
    ) -> VerificationResult:
        try:
            tx = await self.ledger_client.get_transaction(signature)
        except UpstreamUnavailable as e:
            logger.warning(
                "Could not fetch transaction for verification",
                extra={"signature": signature, "error": str(e)},
            )
            return _rejected(VerificationFailure.UPSTREAM_UNAVAILABLE, str(e))

        if not tx:
            return _rejected(
                VerificationFailure.TRANSACTION_NOT_FOUND,
                "Transaction not found or not yet confirmed",
            )
        if transaction_failed(tx):
            return _rejected(
                VerificationFailure.TRANSACTION_FAILED, "Transaction failed on-chain"
            )

        try:
            amount, counterparty = self._received(tx, asset)
        except (KeyError, ValueError, TypeError, InvalidOperation) as e:
            return _rejected(VerificationFailure.ACCOUNTS_UNRESOLVED, str(e))

        if amount is None:
            return _rejected(
                VerificationFailure.ACCOUNTS_UNRESOLVED,
                "Receiving account not found in transaction",
            )
        if amount <= 0:
            return _rejected(
                VerificationFailure.NO_FUNDS_RECEIVED,
                "No funds received by the service address",
                actual_amount=amount,
                counterparty=counterparty,
            )

        if not within_strict_band(expected_amount, amount):
            logger.info(
                "Verification amount mismatch",
                extra={
                    "signature": signature,
                    "expected": str(expected_amount),
                    "actual": str(amount),
                },
            )
            return _rejected(
                VerificationFailure.AMOUNT_MISMATCH,
                f"Expected {expected_amount} {asset.value}, received {amount}",
                actual_amount=amount,
                counterparty=counterparty,
            )

        if expected_counterparty and expected_counterparty not in participants(tx):
            return _rejected(
                VerificationFailure.COUNTERPARTY_MISMATCH,
                "Transaction was not sent by the expected wallet",
                actual_amount=amount,
                counterparty=counterparty,
            )

        return VerificationResult(
            verified=True, actual_amount=amount, counterparty=counterparty
        )

    def _received(
        self, tx: dict[str, Any], asset: PaymentAsset
    ) -> tuple[Optional[Decimal], Optional[str]]:
        if asset is PaymentAsset.NATIVE:
            return native_delta(tx, self.receiving_address), primary_signer(tx)

        mint = self.mints.get(asset)
        if not mint:
            raise ValueError(f"No mint configured for {asset.value}")
        token_account = derive_associated_token_address(self.receiving_address, mint)
        amount = token_delta(tx, mint, self.receiving_address, token_account)
        sender = token_sender(tx, mint, self.receiving_address) or primary_signer(tx)
        return amount, sender
