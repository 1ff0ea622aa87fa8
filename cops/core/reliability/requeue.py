"""
Requeue — backoff bookkeeping for declared resources whose pass failed.

Exponential backoff with jitter, keyed by ``Kind/namespace/name``.
Conflicts are retried without consuming an attempt: they mean another
writer got there first, not that the resource is broken.
In-memory only; a restarted controller resyncs everything anyway.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RequeueItem:
    """One failing declared resource."""

    key: str
    attempt: int = 0
    max_attempts: int = 5
    next_retry_at: float = 0.0
    first_failed_at: float = field(default_factory=time.time)
    last_error: str = ""

    @property
    def exhausted(self) -> bool:
        """Whether all retry attempts have been used."""
        return self.attempt >= self.max_attempts

    @property
    def ready(self) -> bool:
        return time.time() >= self.next_retry_at

    def schedule(self, base_delay: float, max_delay: float, *, count: bool = True) -> float:
        """Schedule the next retry; returns the delay in seconds."""
        if count:
            self.attempt += 1
        exponent = max(self.attempt - 1, 0)
        delay = min(base_delay * (2 ** exponent), max_delay)
        delay += random.uniform(0, delay * 0.3)
        self.next_retry_at = time.time() + delay
        logger.debug(
            "Requeued %s: attempt %d/%d, retry in %.1fs",
            self.key, self.attempt, self.max_attempts, delay,
        )
        return delay

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "next_retry_at": self.next_retry_at,
            "last_error": self.last_error,
        }


class RequeueQueue:
    """Tracks failing keys and when they may run again."""

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
    ):
        self._items: dict[str, RequeueItem] = {}
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay

    @property
    def size(self) -> int:
        return len(self._items)

    def get(self, key: str) -> RequeueItem | None:
        return self._items.get(key)

    def failed(self, key: str, error: str, *, retryable: bool = False) -> RequeueItem:
        """Record a failed pass; ``retryable`` failures don't use up attempts."""
        item = self._items.get(key)
        if item is None:
            item = RequeueItem(key=key, max_attempts=self._max_attempts)
            self._items[key] = item
        item.last_error = error
        item.schedule(self._base_delay, self._max_delay, count=not retryable)
        if item.exhausted:
            logger.warning("%s still failing after %d attempts: %s", key, item.attempt, error)
        return item

    def succeeded(self, key: str) -> None:
        self._items.pop(key, None)

    def due(self, key: str) -> bool:
        """Whether ``key`` may be reconciled now.

        Exhausted keys fall back to the regular resync cadence instead of
        being dropped for good.
        """
        item = self._items.get(key)
        return item is None or item.exhausted or item.ready

    def ready_keys(self) -> list[str]:
        """Backed-off keys whose delay has elapsed, soonest first."""
        ready = [i for i in self._items.values() if i.ready and not i.exhausted]
        return [i.key for i in sorted(ready, key=lambda i: i.next_retry_at)]

    def get_status(self) -> dict[str, Any]:
        return {
            "total": self.size,
            "exhausted": sum(1 for i in self._items.values() if i.exhausted),
            "items": [i.to_dict() for i in self._items.values()],
        }
