"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .collaborators import (
    EligibilityGateProtocol,
    FulfillmentProviderProtocol,
    PriceOracleProtocol,
    RateLimiterProtocol,
)
from .ledger_client_protocol import LedgerClientProtocol

__all__ = [
    "EligibilityGateProtocol",
    "FulfillmentProviderProtocol",
    "LedgerClientProtocol",
    "PriceOracleProtocol",
    "RateLimiterProtocol",
]
