"""Deduplication logic: skip clusters already pushed in earlier cycles."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from bizstock.cluster import generate_idempotency_key, should_deliver
from bizstock.models import ClusteredEvent

logger = logging.getLogger(__name__)


class DeliveryLedger(Protocol):
    """Record of idempotency keys that have been pushed to the user."""

    def has_been_delivered(self, key: str) -> bool: ...

    def mark_delivered(self, key: str) -> None: ...


class InMemoryDeliveryLedger:
    """Set-backed ledger; lives as long as the process."""

    def __init__(self, keys: set[str] | None = None) -> None:
        self._keys: set[str] = set(keys or ())

    def has_been_delivered(self, key: str) -> bool:
        return key in self._keys

    def mark_delivered(self, key: str) -> None:
        self._keys.add(key)

    def __len__(self) -> int:
        return len(self._keys)


def select_undelivered(
    clusters: Sequence[ClusteredEvent],
    ledger: DeliveryLedger,
    version: int = 1,
) -> list[tuple[ClusteredEvent, str]]:
    """Return deliverable clusters whose key is not yet in *ledger*, with the key.

    Keys are not marked here; the caller marks them once the push succeeded.
    """
    deliverable = [c for c in clusters if should_deliver(c)]
    pending: list[tuple[ClusteredEvent, str]] = []
    for cluster in deliverable:
        key = generate_idempotency_key(cluster, version)
        if not ledger.has_been_delivered(key):
            pending.append((cluster, key))
    logger.info(
        "Dedupe: %d clusters → %d deliverable → %d new (filtered %d delivered)",
        len(clusters),
        len(deliverable),
        len(pending),
        len(deliverable) - len(pending),
    )
    return pending
