"""Token-holding eligibility check used before card issuance."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from ...domain.errors import UpstreamUnavailable
from ...domain.payments.entities import EligibilityResult
from ...domain.shared import LedgerClientProtocol
from .addresses import TOKEN_2022_PROGRAM_ID

logger = logging.getLogger(__name__)


def _parsed_balance(accounts: Iterable[dict[str, Any]], mint: str) -> Decimal:
    """Sum ``mint`` balances across ``jsonParsed`` token accounts."""
    total = Decimal(0)
    for account in accounts:
        info = (
            ((account.get("account") or {}).get("data") or {}).get("parsed") or {}
        ).get("info") or {}
        if info.get("mint") != mint:
            continue
        token_amount = info.get("tokenAmount") or {}
        try:
            raw = token_amount.get("amount")
            if raw is not None:
                total += Decimal(int(raw)).scaleb(-int(token_amount.get("decimals") or 0))
            else:
                total += Decimal(str(token_amount.get("uiAmountString") or 0))
        except (ValueError, TypeError, InvalidOperation):
            logger.debug("Skipping unparseable token account", extra={"mint": mint})
    return total


class TokenHoldingGate:
    """Eligible when the wallet holds at least ``required_amount`` of ``token_mint``.

    A requirement of zero (or no mint) disables the gate.
    """

    def __init__(
        self,
        ledger_client: LedgerClientProtocol,
        token_mint: str,
        required_amount: Decimal,
    ):
        self.ledger_client = ledger_client
        self.token_mint = token_mint
        self.required_amount = required_amount

    @property
    def enabled(self) -> bool:
        return bool(self.token_mint) and self.required_amount > 0

    async def get_balance(self, wallet_address: str) -> Decimal:
        """
        Raises:
            UpstreamUnavailable: If neither the mint filter nor the
                Token-2022 program filter can be queried.
        """
        try:
            accounts = await self.ledger_client.get_token_accounts_by_owner(
                wallet_address, mint=self.token_mint
            )
        except UpstreamUnavailable as e:
            # Some RPC providers reject the mint filter for Token-2022 mints
            logger.info(
                "Mint filter rejected; retrying with Token-2022 program filter",
                extra={"wallet": wallet_address, "error": str(e)},
            )
            accounts = await self.ledger_client.get_token_accounts_by_owner(
                wallet_address, program_id=TOKEN_2022_PROGRAM_ID
            )
        return _parsed_balance(accounts, self.token_mint)

    async def check(self, wallet_address: str) -> EligibilityResult:
        if not self.enabled:
            return EligibilityResult(
                eligible=True,
                balance=Decimal(0),
                required=self.required_amount,
                token_mint=self.token_mint,
            )

        balance = await self.get_balance(wallet_address)
        logger.info(
            "Token holding checked",
            extra={
                "wallet": wallet_address,
                "balance": str(balance),
                "required": str(self.required_amount),
            },
        )
        return EligibilityResult(
            eligible=balance >= self.required_amount,
            balance=balance,
            required=self.required_amount,
            token_mint=self.token_mint,
        )
