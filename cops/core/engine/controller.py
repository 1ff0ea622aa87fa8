"""
Controller — decides *when* reconciliation runs.

Every ``resync_interval`` seconds the controller lists all declared
resources (per configured namespace) and reconciles each one. Between
full sweeps it re-runs keys whose backoff has expired. This is the only
layer that catches reconciliation errors: they are logged, counted and
requeued, and the loop carries on with the next resource.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from cops.adapters.store.base import ResourceStore
from cops.core.config.loader import OperatorConfig
from cops.core.engine.pipelines import PIPELINES, reconcile_resource
from cops.core.errors import CopsError
from cops.core.observability.metrics import MetricsRegistry
from cops.core.reliability.requeue import RequeueQueue

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Result of one pass over the declared resources."""

    reconciled: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "reconciled": self.reconciled,
            "failed": self.failed,
            "skipped": self.skipped,
        }


def resource_key(kind: str, namespace: str, name: str) -> str:
    return f"{kind}/{namespace}/{name}"


class Controller:
    """Periodic resync loop over every declared-resource kind."""

    def __init__(
        self,
        store: ResourceStore,
        config: OperatorConfig | None = None,
        metrics: MetricsRegistry | None = None,
    ):
        self.store = store
        self.config = config or OperatorConfig()
        self.metrics = metrics or MetricsRegistry()
        self.requeue = RequeueQueue(
            max_attempts=self.config.max_attempts,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
        )

    def _declared(self) -> list[tuple[str, str, str]]:
        found: list[tuple[str, str, str]] = []
        namespaces: list[str | None] = list(self.config.namespaces) or [None]
        for kind in PIPELINES:
            for namespace in namespaces:
                try:
                    items = self.store.list(kind, namespace)
                except CopsError as e:
                    logger.warning("Cannot list %s in %s: %s", kind, namespace or "all namespaces", e)
                    continue
                for item in items:
                    meta = item.get("metadata") or {}
                    found.append((kind, meta.get("namespace", namespace or ""), meta.get("name", "")))
        return found

    def reconcile_one(self, kind: str, namespace: str, name: str, report: SweepReport) -> None:
        key = resource_key(kind, namespace, name)
        try:
            reconcile_resource(
                self.store, kind, namespace, name,
                config=self.config, metrics=self.metrics,
            )
        except CopsError as e:
            item = self.requeue.failed(key, str(e), retryable=e.retryable)
            report.failed[key] = str(e)
            logger.warning(
                "Reconcile of %s failed (%s), attempt %d: %s",
                key, type(e).__name__, item.attempt, e,
            )
            return
        self.requeue.succeeded(key)
        report.reconciled.append(key)

    def run_once(self) -> SweepReport:
        """Reconcile every declared resource whose backoff allows it."""
        report = SweepReport()
        for kind, namespace, name in self._declared():
            key = resource_key(kind, namespace, name)
            if not self.requeue.due(key):
                report.skipped.append(key)
                continue
            self.reconcile_one(kind, namespace, name, report)

        logger.info(
            "Sweep done: %d reconciled, %d failed, %d backing off",
            len(report.reconciled), len(report.failed), len(report.skipped),
        )
        return report

    def retry_ready(self) -> SweepReport:
        """Re-run only the keys whose backoff just expired."""
        report = SweepReport()
        for key in self.requeue.ready_keys():
            kind, namespace, name = key.split("/", 2)
            self.reconcile_one(kind, namespace, name, report)
        return report

    def run(self, stop: threading.Event | None = None) -> None:
        """Loop until ``stop`` is set (forever if not given)."""
        stop = stop or threading.Event()
        tick = min(self.config.resync_interval, self.config.base_delay)
        next_sweep = 0.0

        logger.info("Controller started (resync every %.0fs)", self.config.resync_interval)
        while not stop.is_set():
            now = time.monotonic()
            if now >= next_sweep:
                self.run_once()
                next_sweep = now + self.config.resync_interval
            else:
                self.retry_ready()
            stop.wait(tick)
        logger.info("Controller stopped")
