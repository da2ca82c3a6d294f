"""PaymentIntent repository implementation over a storage abstraction."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional
from uuid import UUID

from pydantic_core import to_jsonable_python

from ...domain.payments.entities import PaymentIntent, PaymentStatus
from ...domain.payments.payment_intent_repository import PaymentIntentRepository
from ...domain.payments.state_machine import CLAIMABLE_STATES, allowed_sources
from ..storage import KeyValueStore

EXPIRY_INDEX = "payment_intents:expires_at"


def _intent_key(intent_id: UUID | str) -> str:
    return f"payment_intent:{intent_id}"


def _signature_key(signature: str) -> str:
    return f"payment_intent:signature:{signature}"


def _lease_key(intent_id: UUID | str) -> str:
    return f"payment_intent:fulfillment_lease:{intent_id}"


def _last_checked_key(intent_id: UUID | str) -> str:
    return f"payment_intent:last_checked:{intent_id}"


def _status_list(statuses: frozenset[PaymentStatus]) -> str:
    return ",".join(sorted(status.value for status in statuses))


class PaymentIntentRepositoryImpl(PaymentIntentRepository):
    """PaymentIntent repository using a KeyValueStore.

    Claims and status changes go through the Lua scripts in
    ``infrastructure.scripts`` so they are atomic in Redis.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        key = _intent_key(intent.id)
        if await self.store.get(key) is not None:
            raise ValueError("Payment intent with this id already exists")

        await self.store.set(key, intent.model_dump_json())
        await self.store.zadd(
            EXPIRY_INDEX, {str(intent.id): intent.expires_at.timestamp()}
        )
        return intent

    async def get_by_id(self, intent_id: UUID) -> Optional[PaymentIntent]:
        data = await self.store.get(_intent_key(intent_id))
        if not data:
            return None
        return PaymentIntent.model_validate_json(data)

    async def get_signature_owner(self, signature: str) -> Optional[str]:
        return await self.store.get(_signature_key(signature))

    async def claim_signature(
        self,
        intent_id: UUID,
        signature: str,
        counterparty: str,
        *,
        now: datetime,
    ) -> tuple[int, Optional[PaymentIntent]]:
        result = await self.store.run_script(
            "claim_signature",
            keys=[_intent_key(intent_id), _signature_key(signature), EXPIRY_INDEX],
            args=[
                str(intent_id),
                signature,
                counterparty,
                str(now.timestamp()),
                now.isoformat(),
                _status_list(CLAIMABLE_STATES),
            ],
        )
        code = int(result[0])
        payload = result[1]
        if code in (2, 3) or not payload:
            return code, None
        return code, PaymentIntent.model_validate_json(payload)

    async def transition(
        self,
        intent_id: UUID,
        target: PaymentStatus,
        *,
        now: datetime,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> tuple[int, Optional[PaymentIntent]]:
        merged: dict[str, Any] = dict(fields or {})
        merged["updated_at"] = now
        result = await self.store.run_script(
            "transition_status",
            keys=[_intent_key(intent_id)],
            args=[
                _status_list(allowed_sources(target)),
                target.value,
                json.dumps(to_jsonable_python(merged)),
            ],
        )
        code = int(result[0])
        payload = result[1]
        if code == 2 or not payload:
            return code, None
        return code, PaymentIntent.model_validate_json(payload)

    async def acquire_fulfillment_lease(
        self, intent_id: UUID, lease_id: str, *, ttl_seconds: float
    ) -> tuple[int, Optional[PaymentIntent]]:
        result = await self.store.run_script(
            "acquire_fulfillment_lease",
            keys=[_intent_key(intent_id), _lease_key(intent_id)],
            args=[lease_id, str(max(1, int(ttl_seconds * 1000)))],
        )
        code = int(result[0])
        payload = result[1]
        if code == 2 or not payload:
            return code, None
        return code, PaymentIntent.model_validate_json(payload)

    async def release_fulfillment_lease(self, intent_id: UUID, lease_id: str) -> None:
        await self.store.run_script(
            "release_fulfillment_lease", keys=[_lease_key(intent_id)], args=[lease_id]
        )

    async def record_last_checked(self, intent_id: UUID, at: datetime) -> None:
        await self.store.set(_last_checked_key(intent_id), at.isoformat())

    async def get_last_checked(self, intent_id: UUID) -> Optional[datetime]:
        raw = await self.store.get(_last_checked_key(intent_id))
        return datetime.fromisoformat(raw) if raw else None
