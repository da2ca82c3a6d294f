"""
Solana JSON-RPC client.
Thin async wrapper over the handful of RPC methods the reconciliation engine needs.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional, Type
from types import TracebackType

import httpx

from ...domain.errors import UpstreamUnavailable
from ..http.http_client import AsyncHttpClient, HttpRequestError, HttpResponseError

logger = logging.getLogger(__name__)

# Solana RPC commitment levels
CONFIRMED_COMMITMENT = "confirmed"


class SolanaRpcClient:
    """Solana JSON-RPC client over httpx.

    Transport failures and JSON-RPC ``error`` objects are raised as
    ``UpstreamUnavailable``; callers decide whether to absorb them.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        *,
        commitment: str = CONFIRMED_COMMITMENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self._http = AsyncHttpClient(rpc_url, timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._http.post("", json=payload)
            data = response.json()
        except (HttpRequestError, HttpResponseError) as e:
            logger.warning(
                "RPC request failed", extra={"method": method, "error": str(e)}
            )
            raise UpstreamUnavailable(f"Solana RPC {method} failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(
                f"Solana RPC {method} returned invalid JSON"
            ) from e

        if "error" in data:
            logger.warning(
                "RPC error response", extra={"method": method, "error": data["error"]}
            )
            message = data["error"].get("message", "unknown error")
            raise UpstreamUnavailable(f"Solana RPC {method} error: {message}")

        return data.get("result")

    async def get_signatures_for_address(
        self, address: str, *, limit: int
    ) -> list[dict[str, Any]]:
        result = await self._call(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self.commitment}],
        )
        return result or []

    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        return await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    async def get_token_accounts_by_owner(
        self,
        owner: str,
        *,
        mint: Optional[str] = None,
        program_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        if (mint is None) == (program_id is None):
            raise ValueError("Exactly one of mint or program_id is required")
        account_filter = {"mint": mint} if mint else {"programId": program_id}
        result = await self._call(
            "getTokenAccountsByOwner",
            [owner, account_filter, {"encoding": "jsonParsed"}],
        )
        return (result or {}).get("value", [])

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "SolanaRpcClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
