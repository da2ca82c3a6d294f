"""FastAPI dependencies for the payments API."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from ..application.payments.use_cases.amount_matcher import AmountMatcher
from ..application.payments.use_cases.claim_arbiter import ClaimArbiter
from ..application.payments.use_cases.ledger_scanner import LedgerScanner
from ..application.payments.use_cases.payment_creation import PaymentCreationService
from ..application.payments.use_cases.reconciliation import (
    PaymentReconciliationService,
)
from ..application.payments.use_cases.transaction_verifier import TransactionVerifier
from ..domain.payments.entities import PaymentAsset
from ..domain.payments.payment_intent_repository import PaymentIntentRepository
from ..env import Settings, get_settings
from ..infrastructure.database import DatabaseClient, get_database_client
from ..infrastructure.fulfillment.card_provider_client import CardProviderClient
from ..infrastructure.payments.payment_intent_repository_impl import (
    PaymentIntentRepositoryImpl,
)
from ..infrastructure.pricing.coingecko import CoinGeckoPriceOracle
from ..infrastructure.rate_limit import KeyValueRateLimiter
from ..infrastructure.solana.rpc_client import SolanaRpcClient
from ..infrastructure.solana.token_gate import TokenHoldingGate
from ..infrastructure.storage import KeyValueStore, RedisKeyValueStore


@lru_cache
def get_ledger_client() -> SolanaRpcClient:
    """Shared RPC client; its connection pool lives for the whole process."""
    settings = get_settings()
    return SolanaRpcClient(settings.solana_rpc_url, timeout=settings.rpc_timeout_seconds)


@lru_cache
def get_card_provider_client() -> CardProviderClient:
    settings = get_settings()
    return CardProviderClient(
        settings.card_provider_base_url,
        settings.card_provider_api_key,
        bank_bin=settings.card_provider_bank_bin,
    )


@lru_cache
def get_price_oracle() -> CoinGeckoPriceOracle:
    settings = get_settings()
    return CoinGeckoPriceOracle(
        settings.price_api_url, settings.fallback_native_price_usd
    )


def get_database_client_with_settings(
    settings: Settings = Depends(get_settings),
) -> DatabaseClient:
    """Get database client with settings."""
    return get_database_client(settings)


def get_key_value_store(
    db_client: DatabaseClient = Depends(get_database_client_with_settings),
) -> KeyValueStore:
    """Get key-value store."""
    return RedisKeyValueStore(db_client)


def get_payment_intent_repository(
    store: KeyValueStore = Depends(get_key_value_store),
) -> PaymentIntentRepository:
    """Get payment intent repository."""
    return PaymentIntentRepositoryImpl(store)


def get_ledger_scanner(
    ledger_client: SolanaRpcClient = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
) -> LedgerScanner:
    """Get ledger scanner for the configured receiving address."""
    return LedgerScanner(
        ledger_client,
        settings.receiving_address,
        {
            PaymentAsset.STABLE_A: settings.stable_a_mint,
            PaymentAsset.STABLE_B: settings.stable_b_mint,
        },
        native_limit=settings.native_scan_limit,
        token_limit=settings.token_scan_limit,
    )


def get_payment_creation_service(
    payment_intent_repository: PaymentIntentRepository = Depends(
        get_payment_intent_repository
    ),
    price_oracle: CoinGeckoPriceOracle = Depends(get_price_oracle),
    ledger_scanner: LedgerScanner = Depends(get_ledger_scanner),
    settings: Settings = Depends(get_settings),
) -> PaymentCreationService:
    """Get payment creation service."""
    return PaymentCreationService(
        payment_intent_repository,
        price_oracle,
        ledger_scanner,
        expiry_minutes=settings.payment_expiry_minutes,
        native_price_buffer=settings.native_price_buffer,
    )


def get_reconciliation_service(
    payment_intent_repository: PaymentIntentRepository = Depends(
        get_payment_intent_repository
    ),
    store: KeyValueStore = Depends(get_key_value_store),
    ledger_client: SolanaRpcClient = Depends(get_ledger_client),
    ledger_scanner: LedgerScanner = Depends(get_ledger_scanner),
    card_provider: CardProviderClient = Depends(get_card_provider_client),
    settings: Settings = Depends(get_settings),
) -> PaymentReconciliationService:
    """Get reconciliation service wired to the shared ledger client."""
    return PaymentReconciliationService(
        payment_intent_repository=payment_intent_repository,
        ledger_scanner=ledger_scanner,
        amount_matcher=AmountMatcher(
            payment_intent_repository, window_seconds=settings.match_window_seconds
        ),
        transaction_verifier=TransactionVerifier(
            ledger_client, settings.receiving_address, ledger_scanner.mints
        ),
        claim_arbiter=ClaimArbiter(payment_intent_repository),
        fulfillment_provider=card_provider,
        eligibility_gate=TokenHoldingGate(
            ledger_client,
            settings.eligibility_token_mint,
            settings.eligibility_required_amount,
        ),
        rate_limiter=KeyValueRateLimiter(
            store, limit=settings.verify_rate_limit_per_minute
        ),
        fulfillment_lease_seconds=settings.fulfillment_lease_seconds,
    )
