"""Unit tests for the token-holding eligibility gate."""

from __future__ import annotations

from decimal import Decimal

import pytest

from chainpay.domain.errors import UpstreamUnavailable
from chainpay.infrastructure.solana.addresses import TOKEN_2022_PROGRAM_ID
from chainpay.infrastructure.solana.token_gate import TokenHoldingGate
from tests.fixtures import TestLedgerClient
from tests.fixtures.test_ledger_client import token_account

GATE_MINT = "GateMint111111111111111111111111111111111111"
WALLET = "Wallet1111111111111111111111111111111111111"


@pytest.fixture
def gate(ledger_client: TestLedgerClient) -> TokenHoldingGate:
    return TokenHoldingGate(ledger_client, GATE_MINT, Decimal(2_000_000))


async def test_eligible_when_balance_meets_requirement(
    gate: TokenHoldingGate, ledger_client: TestLedgerClient
) -> None:
    ledger_client.set_token_accounts(
        WALLET,
        [
            token_account(GATE_MINT, WALLET, "1500000"),
            token_account(GATE_MINT, WALLET, "500000"),
            token_account("OtherMint", WALLET, "9000000"),
        ],
    )

    result = await gate.check(WALLET)

    assert result.eligible
    assert result.balance == Decimal(2_000_000)
    assert result.required == Decimal(2_000_000)


async def test_ineligible_below_requirement(
    gate: TokenHoldingGate, ledger_client: TestLedgerClient
) -> None:
    ledger_client.set_token_accounts(WALLET, [token_account(GATE_MINT, WALLET, "10")])

    result = await gate.check(WALLET)

    assert not result.eligible
    assert result.balance == Decimal(10)


async def test_falls_back_to_token_2022_program(
    gate: TokenHoldingGate, ledger_client: TestLedgerClient
) -> None:
    ledger_client.fail_mint_filter = True
    ledger_client.set_token_accounts(
        WALLET, [token_account(GATE_MINT, WALLET, "2500000")]
    )

    result = await gate.check(WALLET)

    assert result.eligible
    calls = ledger_client.calls_to("get_token_accounts_by_owner")
    assert calls[-1] == {
        "owner": WALLET,
        "mint": None,
        "program_id": TOKEN_2022_PROGRAM_ID,
    }


async def test_lookup_failure_propagates(
    gate: TokenHoldingGate, ledger_client: TestLedgerClient
) -> None:
    ledger_client.fail_token_accounts = True

    with pytest.raises(UpstreamUnavailable):
        await gate.check(WALLET)


async def test_disabled_gate_is_always_eligible(ledger_client: TestLedgerClient) -> None:
    gate = TokenHoldingGate(ledger_client, GATE_MINT, Decimal(0))

    result = await gate.check(WALLET)

    assert result.eligible
    assert ledger_client.calls == []
