"""Payment intent domain repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping, Optional
from uuid import UUID

from .entities import PaymentIntent, PaymentStatus


class PaymentIntentRepository(ABC):
    """Abstract repository interface for PaymentIntent entities."""

    @abstractmethod
    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """Persist a new intent and index it by expiry time."""
        pass

    @abstractmethod
    async def get_by_id(self, intent_id: UUID) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def get_signature_owner(self, signature: str) -> Optional[str]:
        """Return the id of the intent that claimed ``signature``, if any."""
        pass

    @abstractmethod
    async def claim_signature(
        self,
        intent_id: UUID,
        signature: str,
        counterparty: str,
        *,
        now: datetime,
    ) -> tuple[int, Optional[PaymentIntent]]:
        """
        Atomically bind ``signature`` to the intent and mark it VERIFIED.

        Returns:
          (1, intent) -> claimed (or already claimed by this same intent)
          (0, intent) -> intent is not claimable (wrong status or bound elsewhere)
          (2, None)   -> intent missing
          (3, None)   -> signature already claimed by another intent
          (4, intent) -> intent expired
        """
        pass

    @abstractmethod
    async def transition(
        self,
        intent_id: UUID,
        target: PaymentStatus,
        *,
        now: datetime,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> tuple[int, Optional[PaymentIntent]]:
        """
        Atomically move the intent to ``target`` if its current status allows it.

        ``fields`` are merged into the stored document in the same write.

        Returns:
          (1, intent) -> moved
          (0, intent) -> rejected (returns current intent)
          (2, None)   -> intent missing
        """
        pass

    @abstractmethod
    async def acquire_fulfillment_lease(
        self, intent_id: UUID, lease_id: str, *, ttl_seconds: float
    ) -> tuple[int, Optional[PaymentIntent]]:
        """
        Atomically take the right to fulfil a VERIFIED intent.

        The lease expires on its own after ``ttl_seconds``.

        Returns:
          (1, intent) -> lease taken
          (0, intent) -> intent is not VERIFIED (returns current intent)
          (2, None)   -> intent missing
          (3, intent) -> another caller holds the lease
        """
        pass

    @abstractmethod
    async def release_fulfillment_lease(self, intent_id: UUID, lease_id: str) -> None:
        """Drop the lease if ``lease_id`` still holds it."""
        pass

    @abstractmethod
    async def record_last_checked(self, intent_id: UUID, at: datetime) -> None:
        """Store when the intent was last polled. Side data, not part of the intent."""
        pass

    @abstractmethod
    async def get_last_checked(self, intent_id: UUID) -> Optional[datetime]:
        pass
