from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel, field_validator
from solders.pubkey import Pubkey

USDC_MINT_MAINNET = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT_MAINNET = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"


class Settings(BaseModel):
    """Typed application settings built from environment variables."""

    # Database settings
    database_url: str = "redis://localhost:6379/0"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_workers: int = 1
    api_cors_origins: list[str] = ["*"]

    # Application settings
    app_name: str = "ChainPay"
    app_version: str = "1.0.0"

    # Ledger settings
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    rpc_timeout_seconds: float = 30.0
    receiving_address: str = ""
    stable_a_mint: str = USDC_MINT_MAINNET
    stable_b_mint: str = USDT_MINT_MAINNET
    native_scan_limit: int = 100
    token_scan_limit: int = 50

    # Reconciliation policy
    match_window_seconds: int = 300
    payment_expiry_minutes: int = 30
    verify_rate_limit_per_minute: int = 30
    fulfillment_lease_seconds: float = 120.0

    # Issuance eligibility gate (0 disables it)
    eligibility_token_mint: str = ""
    eligibility_required_amount: Decimal = Decimal(0)

    # Collaborators
    card_provider_base_url: str = "https://kripicard.com/api"
    card_provider_api_key: str = ""
    card_provider_bank_bin: str = "49387520"
    price_api_url: str = (
        "https://api.coingecko.com/api/v3/simple/price?ids=solana&vs_currencies=usd"
    )
    fallback_native_price_usd: Decimal = Decimal(100)
    native_price_buffer: Decimal = Decimal("1.02")

    @field_validator(
        "receiving_address", "stable_a_mint", "stable_b_mint", "eligibility_token_mint"
    )
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v:
            return v
        try:
            Pubkey.from_string(v)
        except ValueError as e:
            raise ValueError(f"Invalid Solana address {v!r}: {e}") from e
        return v

    @field_validator("native_scan_limit")
    @classmethod
    def validate_native_scan_limit(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("native_scan_limit must be between 1 and 100")
        return v

    @field_validator("token_scan_limit")
    @classmethod
    def validate_token_scan_limit(cls, v: int) -> int:
        if not 1 <= v <= 50:
            raise ValueError("token_scan_limit must be between 1 and 50")
        return v


def _env(name: str, default: str) -> str:
    return os.environ.get(f"CHAINPAY_{name}", default)


@lru_cache
def get_settings() -> Settings:
    """Return typed settings instance sourced from env vars."""
    defaults = Settings()
    return Settings(
        database_url=_env("DATABASE_URL", defaults.database_url),
        api_host=_env("API_HOST", defaults.api_host),
        api_port=int(_env("API_PORT", str(defaults.api_port))),
        api_debug=_env("API_DEBUG", "false").lower() == "true",
        api_workers=int(_env("API_WORKERS", str(defaults.api_workers))),
        api_cors_origins=_env("API_CORS_ORIGINS", "*").split(","),
        app_name=_env("APP_NAME", defaults.app_name),
        app_version=_env("APP_VERSION", defaults.app_version),
        solana_rpc_url=_env("SOLANA_RPC_URL", defaults.solana_rpc_url),
        rpc_timeout_seconds=float(
            _env("RPC_TIMEOUT_SECONDS", str(defaults.rpc_timeout_seconds))
        ),
        receiving_address=_env("RECEIVING_ADDRESS", ""),
        stable_a_mint=_env("STABLE_A_MINT", defaults.stable_a_mint),
        stable_b_mint=_env("STABLE_B_MINT", defaults.stable_b_mint),
        native_scan_limit=int(
            _env("NATIVE_SCAN_LIMIT", str(defaults.native_scan_limit))
        ),
        token_scan_limit=int(_env("TOKEN_SCAN_LIMIT", str(defaults.token_scan_limit))),
        match_window_seconds=int(
            _env("MATCH_WINDOW_SECONDS", str(defaults.match_window_seconds))
        ),
        payment_expiry_minutes=int(
            _env("PAYMENT_EXPIRY_MINUTES", str(defaults.payment_expiry_minutes))
        ),
        verify_rate_limit_per_minute=int(
            _env(
                "VERIFY_RATE_LIMIT_PER_MINUTE",
                str(defaults.verify_rate_limit_per_minute),
            )
        ),
        fulfillment_lease_seconds=float(
            _env("FULFILLMENT_LEASE_SECONDS", str(defaults.fulfillment_lease_seconds))
        ),
        eligibility_token_mint=_env("ELIGIBILITY_TOKEN_MINT", ""),
        eligibility_required_amount=Decimal(_env("ELIGIBILITY_REQUIRED_AMOUNT", "0")),
        card_provider_base_url=_env(
            "CARD_PROVIDER_BASE_URL", defaults.card_provider_base_url
        ),
        card_provider_api_key=_env("CARD_PROVIDER_API_KEY", ""),
        card_provider_bank_bin=_env(
            "CARD_PROVIDER_BANK_BIN", defaults.card_provider_bank_bin
        ),
        price_api_url=_env("PRICE_API_URL", defaults.price_api_url),
        fallback_native_price_usd=Decimal(
            _env("FALLBACK_NATIVE_PRICE_USD", str(defaults.fallback_native_price_usd))
        ),
        native_price_buffer=Decimal(
            _env("NATIVE_PRICE_BUFFER", str(defaults.native_price_buffer))
        ),
    )
