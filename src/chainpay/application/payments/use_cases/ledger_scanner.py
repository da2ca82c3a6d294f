"""Ledger scanning: list recent incoming transfers to the service's accounts."""

from __future__ import annotations

import logging
import time
from decimal import InvalidOperation
from typing import Any, Mapping, Optional

from ....domain.errors import UpstreamUnavailable
from ....domain.payments.entities import CandidateTransfer, PaymentAsset
from ....domain.shared import LedgerClientProtocol
from ....infrastructure.solana.addresses import derive_associated_token_address
from .transfer_parsing import (
    block_time,
    native_delta,
    primary_signer,
    token_delta,
    token_sender,
    transaction_failed,
)

logger = logging.getLogger(__name__)

UNKNOWN_COUNTERPARTY = "unknown"


class LedgerScanner:
    """Fetches recent confirmed transfers into the receiving address or its token accounts.

    Scanning is read-only and never raises: RPC failures and transactions that
    cannot be interpreted are skipped, and an empty list is a normal answer.
    """

    def __init__(
        self,
        ledger_client: LedgerClientProtocol,
        receiving_address: str,
        mints: Mapping[PaymentAsset, str],
        *,
        native_limit: int = 100,
        token_limit: int = 50,
    ):
        self.ledger_client = ledger_client
        self.receiving_address = receiving_address
        self.mints = dict(mints)
        self.native_limit = min(native_limit, 100)
        self.token_limit = min(token_limit, 50)
        self._token_accounts: dict[PaymentAsset, str] = {}

    def mint_for(self, asset: PaymentAsset) -> str:
        if asset not in self.mints:
            raise ValueError(f"No mint configured for {asset.value}")
        return self.mints[asset]

    def receiving_account(self, asset: PaymentAsset) -> str:
        """Where ``asset`` must be sent: the wallet itself, or its token sub-account."""
        if asset is PaymentAsset.NATIVE:
            return self.receiving_address
        if asset not in self._token_accounts:
            self._token_accounts[asset] = derive_associated_token_address(
                self.receiving_address, self.mint_for(asset)
            )
        return self._token_accounts[asset]

    async def scan(self, asset: PaymentAsset) -> list[CandidateTransfer]:
        address = self.receiving_account(asset)
        limit = self.native_limit if asset is PaymentAsset.NATIVE else self.token_limit

        try:
            signatures = await self.ledger_client.get_signatures_for_address(
                address, limit=limit
            )
        except UpstreamUnavailable as e:
            logger.warning(
                "Ledger scan failed; treating as no candidates",
                extra={"asset": asset.value, "address": address, "error": str(e)},
            )
            return []

        candidates: list[CandidateTransfer] = []
        for sig_info in signatures:
            signature = sig_info.get("signature")
            if not signature or sig_info.get("err") is not None:
                continue

            try:
                tx = await self.ledger_client.get_transaction(signature)
            except UpstreamUnavailable:
                logger.info("Skipping transaction that could not be fetched", extra={"signature": signature})
                continue
            if not tx or transaction_failed(tx):
                continue

            try:
                candidate = self._to_candidate(asset, signature, tx, sig_info)
            except (KeyError, ValueError, TypeError, InvalidOperation) as e:
                logger.info(
                    "Skipping unparseable transaction",
                    extra={"signature": signature, "error": str(e)},
                )
                continue

            if candidate is not None:
                candidates.append(candidate)

        logger.info(
            "Ledger scan complete",
            extra={
                "asset": asset.value,
                "signatures": len(signatures),
                "candidates": len(candidates),
            },
        )
        return candidates

    def _to_candidate(
        self,
        asset: PaymentAsset,
        signature: str,
        tx: dict[str, Any],
        sig_info: dict[str, Any],
    ) -> Optional[CandidateTransfer]:
        if asset is PaymentAsset.NATIVE:
            amount = native_delta(tx, self.receiving_address)
            counterparty = primary_signer(tx)
        else:
            mint = self.mint_for(asset)
            amount = token_delta(
                tx, mint, self.receiving_address, self.receiving_account(asset)
            )
            counterparty = token_sender(tx, mint, self.receiving_address) or primary_signer(tx)

        # Unresolvable layouts yield None; outgoing or fee-only transactions are not payments
        if amount is None or amount <= 0:
            return None

        timestamp = block_time(tx) or sig_info.get("blockTime") or int(time.time())
        return CandidateTransfer(
            signature=signature,
            amount=amount,
            counterparty=counterparty or UNKNOWN_COUNTERPARTY,
            timestamp=int(timestamp),
        )
