"""HTTP client for the virtual card provider."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from ...domain.errors import FulfillmentFailed, UpstreamUnavailable
from ...domain.payments.entities import PaymentIntent
from ..http.http_client import AsyncHttpClient, HttpRequestError, HttpResponseError

logger = logging.getLogger(__name__)

DEFAULT_BANK_BIN = "49387520"


class CardProviderClient:
    """Issues and funds virtual cards once a payment is verified.

    Transport failures raise ``UpstreamUnavailable``; a response the provider
    marks as unsuccessful raises ``FulfillmentFailed``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        bank_bin: str = DEFAULT_BANK_BIN,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.bank_bin = bank_bin
        self._http = AsyncHttpClient(base_url, timeout=timeout, transport=transport)

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise FulfillmentFailed("Card provider API key is not configured")

        try:
            response = await self._http.post(path, json={"api_key": self.api_key, **payload})
            data = response.json()
        except HttpResponseError as e:
            message = e.response.text[:200]
            raise FulfillmentFailed(
                f"Card provider returned HTTP {e.response.status_code}: {message}"
            ) from e
        except HttpRequestError as e:
            raise UpstreamUnavailable(f"Could not reach card provider: {e}") from e
        except ValueError as e:
            raise FulfillmentFailed("Card provider returned a non-JSON response") from e

        if not data.get("success"):
            raise FulfillmentFailed(
                data.get("message") or "Card provider returned success=false"
            )
        return data

    async def issue_card(self, intent: PaymentIntent) -> str:
        if not intent.card_holder_name:
            raise FulfillmentFailed("Name on card is required")

        data = await self._post(
            "/premium/Create_card",
            {
                "amount": float(intent.fulfillment_amount_usd),
                "bankBin": self.bank_bin,
                "name_on_card": intent.card_holder_name.upper(),
                "email": intent.card_holder_email or "",
            },
        )
        card_id = data.get("card_id")
        if not card_id:
            raise FulfillmentFailed("Card provider response is missing card_id")

        logger.info(
            "Card issued",
            extra={"intent_id": str(intent.id), "card_id": card_id},
        )
        return str(card_id)

    async def fund_card(self, intent: PaymentIntent) -> Decimal:
        if not intent.target_card_id:
            raise FulfillmentFailed("Card ID is required for top-up")

        data = await self._post(
            "/premium/Fund_card",
            {
                "card_id": intent.target_card_id,
                "amount": float(intent.fulfillment_amount_usd),
            },
        )
        try:
            new_balance = Decimal(str(data.get("new_balance", 0)))
        except InvalidOperation as e:
            raise FulfillmentFailed("Card provider returned an invalid balance") from e

        logger.info(
            "Card funded",
            extra={
                "intent_id": str(intent.id),
                "card_id": intent.target_card_id,
                "new_balance": str(new_balance),
            },
        )
        return new_balance

    async def aclose(self) -> None:
        await self._http.aclose()
