"""Protocol interface for Solana JSON-RPC client implementations.

Use cases depend on this protocol rather than on the concrete HTTP client so
tests can feed canned ledger responses.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Type
from types import TracebackType


class LedgerClientProtocol(Protocol):
    """The subset of the Solana JSON-RPC API used by the reconciliation engine.

    Implementations raise ``UpstreamUnavailable`` when the node cannot be
    reached or answers with a JSON-RPC error object.
    """

    async def get_signatures_for_address(
        self, address: str, *, limit: int
    ) -> list[dict[str, Any]]:
        """Most recent confirmed signatures touching ``address``, newest first."""
        ...

    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        """A ``jsonParsed`` transaction, or None when the node does not know it."""
        ...

    async def get_token_accounts_by_owner(
        self,
        owner: str,
        *,
        mint: Optional[str] = None,
        program_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Parsed token accounts owned by ``owner`` filtered by mint or program."""
        ...

    async def __aenter__(self) -> "LedgerClientProtocol":
        ...

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        ...
