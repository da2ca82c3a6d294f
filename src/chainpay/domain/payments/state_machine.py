"""Lifecycle rules for payment intents.

The table below is the single source of truth for which status changes are
legal. Repositories use :func:`allowed_sources` to build the compare-and-set
condition of their atomic status update, so the rules hold even when several
processes write the same intent concurrently.

::

    PENDING ──> CONFIRMING ──> VERIFIED ──> COMPLETED
       │  \\          │  \\
       │   └──────────┼───> VERIFIED
       ├──> EXPIRED <─┤
       └──> FAILED  <─┘
"""

from __future__ import annotations

from typing import FrozenSet, Mapping

from ..errors import InvalidTransition
from .entities import PaymentStatus

TRANSITIONS: Mapping[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.CONFIRMING,
            PaymentStatus.VERIFIED,
            PaymentStatus.EXPIRED,
            PaymentStatus.FAILED,
        }
    ),
    PaymentStatus.CONFIRMING: frozenset(
        {PaymentStatus.VERIFIED, PaymentStatus.EXPIRED, PaymentStatus.FAILED}
    ),
    PaymentStatus.VERIFIED: frozenset({PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

# States from which a signature may still be claimed.
CLAIMABLE_STATES: FrozenSet[PaymentStatus] = frozenset(
    source
    for source, targets in TRANSITIONS.items()
    if PaymentStatus.VERIFIED in targets
)


def can_transition(source: PaymentStatus, target: PaymentStatus) -> bool:
    return target in TRANSITIONS[source]


def allowed_sources(target: PaymentStatus) -> FrozenSet[PaymentStatus]:
    """Every status that may legally move to ``target``."""
    return frozenset(
        source for source, targets in TRANSITIONS.items() if target in targets
    )


def ensure_transition(source: PaymentStatus, target: PaymentStatus) -> None:
    """Raise if ``source -> target`` is not in the table.

    Raises:
        InvalidTransition: If the change is not allowed.
    """
    if not can_transition(source, target):
        raise InvalidTransition(
            f"Cannot move payment from {source.value} to {target.value}",
            status=source.value,
        )
