"""
Tests for the controller loop and requeue backoff.
"""

import threading
from unittest.mock import patch

from cops.adapters.store.memory import MemoryStore
from cops.core.config.loader import OperatorConfig
from cops.core.engine.controller import Controller, SweepReport, resource_key
from cops.core.errors import ConflictError, StoreError
from cops.core.reliability.requeue import RequeueItem, RequeueQueue
from tests.factories import buildkit_manifest, buildkite_manifest

FLEET = "Buildkit/ci/buildkitd"
AGENTS = "Buildkite/ci/agents"

# Long backoff so nothing becomes due again during a test
SLOW = OperatorConfig(base_delay=60.0, max_delay=600.0)


def _both() -> MemoryStore:
    return MemoryStore([buildkit_manifest(), buildkite_manifest()])


# ── Requeue ─────────────────────────────────────────────────────────


class TestRequeueItem:
    def test_exhausted(self):
        item = RequeueItem(key="k", max_attempts=2)
        assert not item.exhausted
        item.attempt = 2
        assert item.exhausted

    @patch("cops.core.reliability.requeue.random.uniform", return_value=0.0)
    def test_exponential_delay(self, _):
        item = RequeueItem(key="k")
        assert item.schedule(1.0, 60.0) == 1.0
        assert item.schedule(1.0, 60.0) == 2.0
        assert item.schedule(1.0, 60.0) == 4.0

    @patch("cops.core.reliability.requeue.random.uniform", return_value=0.0)
    def test_delay_capped(self, _):
        item = RequeueItem(key="k", attempt=20)
        assert item.schedule(1.0, 60.0) == 60.0

    def test_jitter_bounded(self):
        item = RequeueItem(key="k")
        delay = item.schedule(10.0, 60.0)
        assert 10.0 <= delay <= 13.0


class TestRequeueQueue:
    def test_failure_counts_attempt(self):
        q = RequeueQueue(base_delay=60.0)
        item = q.failed("k", "boom")
        assert item.attempt == 1
        assert item.last_error == "boom"
        assert q.size == 1

    def test_retryable_failure_keeps_attempts(self):
        q = RequeueQueue(base_delay=60.0)
        q.failed("k", "conflict", retryable=True)
        q.failed("k", "conflict", retryable=True)
        assert q.get("k").attempt == 0

    def test_not_due_while_backing_off(self):
        q = RequeueQueue(base_delay=60.0)
        q.failed("k", "boom")
        assert not q.due("k")
        assert q.due("other")
        assert q.ready_keys() == []

    def test_exhausted_keys_fall_back_to_resync(self):
        q = RequeueQueue(max_attempts=1, base_delay=60.0)
        q.failed("k", "boom")
        assert q.get("k").exhausted
        assert q.due("k")
        assert q.ready_keys() == []

    def test_success_clears(self):
        q = RequeueQueue()
        q.failed("k", "boom")
        q.succeeded("k")
        assert q.size == 0
        q.succeeded("never-failed")

    def test_ready_keys_soonest_first(self):
        q = RequeueQueue(base_delay=60.0)
        q.failed("late", "x")
        q.failed("early", "x")
        q.get("late").next_retry_at = 2.0
        q.get("early").next_retry_at = 1.0
        assert q.ready_keys() == ["early", "late"]

    def test_status(self):
        q = RequeueQueue(max_attempts=1, base_delay=60.0)
        q.failed("a", "x")
        q.failed("b", "y", retryable=True)
        status = q.get_status()
        assert status["total"] == 2
        assert status["exhausted"] == 1


# ── Controller ──────────────────────────────────────────────────────


class TestResourceKey:
    def test_format(self):
        assert resource_key("Buildkit", "ci", "bk") == "Buildkit/ci/bk"


class TestRunOnce:
    def test_reconciles_every_kind(self):
        store = _both()
        report = Controller(store, SLOW).run_once()
        assert report.ok
        assert report.reconciled == [FLEET, AGENTS]
        assert store.peek("Deployment", "ci", "buildkitd") is not None
        assert store.peek("Deployment", "ci", "agents") is not None

    def test_empty_cluster(self, store):
        report = Controller(store, SLOW).run_once()
        assert report.to_dict() == {"reconciled": [], "failed": {}, "skipped": []}

    def test_failure_is_isolated(self):
        store = _both()
        store.fail_on("create", "Service", StoreError("quota exceeded"))
        controller = Controller(store, SLOW)
        report = controller.run_once()
        assert not report.ok
        assert report.failed == {FLEET: "quota exceeded"}
        assert report.reconciled == [AGENTS]
        assert controller.requeue.get(FLEET).attempt == 1

    def test_backing_off_key_is_skipped(self):
        store = _both()
        store.fail_on("create", "Service", StoreError("quota exceeded"))
        controller = Controller(store, SLOW)
        controller.run_once()
        store.clear_failures()

        report = controller.run_once()
        assert report.skipped == [FLEET]
        assert report.reconciled == [AGENTS]

    def test_conflict_does_not_use_attempts(self):
        store = _both()
        store.fail_on("update_status", "Buildkit", ConflictError("stale"))
        controller = Controller(store, SLOW)
        controller.run_once()
        assert controller.requeue.get(FLEET).attempt == 0

    def test_success_clears_requeue(self):
        store = _both()
        store.fail_on("create", "Service", StoreError("quota exceeded"))
        controller = Controller(store, SLOW)
        controller.run_once()
        store.clear_failures()
        controller.requeue.get(FLEET).next_retry_at = 0.0

        report = controller.run_once()
        assert FLEET in report.reconciled
        assert controller.requeue.size == 0

    def test_namespace_scoping(self):
        store = _both()
        store.seed(buildkit_manifest(name="prod-bk", namespace="prod"))
        report = Controller(store, OperatorConfig(namespaces=["prod"])).run_once()
        assert report.reconciled == ["Buildkit/prod/prod-bk"]

    def test_list_failure_skips_kind(self):
        store = _both()
        store.fail_on("list", "Buildkit", StoreError("forbidden"))
        report = Controller(store, SLOW).run_once()
        assert report.reconciled == [AGENTS]
        assert report.ok

    def test_metrics_accumulate(self):
        store = _both()
        controller = Controller(store, SLOW)
        controller.run_once()
        controller.run_once()
        assert controller.metrics.value("reconcile_total", kind="Buildkit", outcome="reconciled") == 2


class TestRetryReady:
    def test_reruns_only_expired_keys(self):
        store = _both()
        store.fail_on("create", "Service", StoreError("quota exceeded"))
        controller = Controller(store, SLOW)
        controller.run_once()
        store.clear_failures()

        assert controller.retry_ready().reconciled == []

        controller.requeue.get(FLEET).next_retry_at = 0.0
        report = controller.retry_ready()
        assert report.reconciled == [FLEET]
        assert store.peek("Service", "ci", "buildkitd") is not None


class TestRunLoop:
    def test_stops_when_event_set(self, store):
        stop = threading.Event()
        controller = Controller(store, OperatorConfig(resync_interval=0.01, base_delay=0.01))

        def sweep_and_stop():
            stop.set()
            return SweepReport()

        with patch.object(controller, "run_once", side_effect=sweep_and_stop) as run_once:
            controller.run(stop)
        run_once.assert_called_once()

    def test_not_started_when_already_stopped(self, store):
        stop = threading.Event()
        stop.set()
        controller = Controller(store, SLOW)
        with patch.object(controller, "run_once") as run_once:
            controller.run(stop)
        run_once.assert_not_called()
