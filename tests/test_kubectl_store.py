"""
Tests for the kubectl store — mocked kubectl invocations.

Every test mocks _run_kubectl; no subprocess, no cluster.
"""

import json
import subprocess
from unittest.mock import patch

import pytest

from cops.adapters.store.kubectl import KubectlStore, _classify
from cops.core.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreError,
)


# ── Helpers ──────────────────────────────────────────────────────

def _mock_result(returncode=0, stdout="", stderr=""):
    """Create a mock subprocess.CompletedProcess."""
    return type("Result", (), {
        "returncode": returncode, "stdout": stdout, "stderr": stderr,
    })()


_DEPLOY = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {"name": "buildkitd", "namespace": "ci", "resourceVersion": "42"},
    "spec": {"replicas": 1},
}


# ═══════════════════════════════════════════════════════════════════
#  _classify (pure logic — no mocking needed)
# ═══════════════════════════════════════════════════════════════════


class TestClassify:
    def test_not_found(self):
        err = _classify(
            'Error from server (NotFound): deployments.apps "x" not found',
            kind="Deployment", key="ci/x",
        )
        assert isinstance(err, NotFoundError)
        assert err.kind == "Deployment"
        assert err.key == "ci/x"

    def test_conflict(self):
        err = _classify(
            'Error from server (Conflict): Operation cannot be fulfilled on deployments.apps "x": '
            "the object has been modified; please apply your changes to the latest version",
            kind="Deployment", key="ci/x",
        )
        assert isinstance(err, ConflictError)
        assert err.retryable is True

    def test_already_exists(self):
        err = _classify(
            'Error from server (AlreadyExists): secrets "x" already exists',
            kind="Secret", key="ci/x",
        )
        assert isinstance(err, AlreadyExistsError)

    def test_anything_else(self):
        err = _classify(
            'Error from server (Forbidden): secrets is forbidden: User "system:anonymous" cannot create',
            kind="Secret", key="ci/x",
        )
        assert type(err) is StoreError
        assert err.retryable is False

    def test_empty_stderr(self):
        err = _classify("", kind="Secret", key="ci/x")
        assert "no output" in str(err)


# ═══════════════════════════════════════════════════════════════════
#  Reads
# ═══════════════════════════════════════════════════════════════════


class TestGet:
    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_get_parses_json(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps(_DEPLOY))
        obj = KubectlStore().get("Deployment", "ci", "buildkitd")
        assert obj == _DEPLOY
        args = mock_run.call_args.args
        assert args == ("get", "deployments.apps", "buildkitd", "-n", "ci", "-o", "json")

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_get_declared_kind_uses_group(self, mock_run):
        mock_run.return_value = _mock_result(stdout="{}")
        KubectlStore().get("Buildkit", "ci", "buildkitd")
        assert mock_run.call_args.args[1] == "buildkits.cops.io"

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_get_missing(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1,
            stderr='Error from server (NotFound): buildkits.cops.io "gone" not found',
        )
        with pytest.raises(NotFoundError):
            KubectlStore().get("Buildkit", "ci", "gone")

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_context_and_timeout(self, mock_run):
        mock_run.return_value = _mock_result(stdout="{}")
        KubectlStore(timeout=7, context="staging").get("Secret", "ci", "x")
        assert mock_run.call_args.args[:2] == ("--context", "staging")
        assert mock_run.call_args.kwargs["timeout"] == 7


class TestList:
    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_namespaced_with_labels(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps({"items": [_DEPLOY]}))
        items = KubectlStore().list("Pod", "ci", {"app": "buildkitd"})
        assert items == [_DEPLOY]
        assert mock_run.call_args.args == (
            "get", "pods", "-n", "ci", "-l", "app=buildkitd", "-o", "json",
        )

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_all_namespaces(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps({"items": []}))
        assert KubectlStore().list("Buildkite") == []
        args = mock_run.call_args.args
        assert "--all-namespaces" in args
        assert "-l" not in args


# ═══════════════════════════════════════════════════════════════════
#  Writes
# ═══════════════════════════════════════════════════════════════════


class TestWrites:
    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_create_sends_manifest_on_stdin(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps(_DEPLOY))
        KubectlStore().create(_DEPLOY)
        assert mock_run.call_args.args == ("create", "-f", "-", "-o", "json")
        assert json.loads(mock_run.call_args.kwargs["input"]) == _DEPLOY

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_update_is_replace(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps(_DEPLOY))
        KubectlStore().update(_DEPLOY)
        assert mock_run.call_args.args[0] == "replace"
        assert "--subresource=status" not in mock_run.call_args.args

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_update_status_targets_subresource(self, mock_run):
        mock_run.return_value = _mock_result(stdout="{}")
        KubectlStore().update_status({**_DEPLOY, "status": {"ok": True}})
        assert mock_run.call_args.args[:2] == ("replace", "--subresource=status")

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_stale_update_is_conflict(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1,
            stderr="Error from server (Conflict): the object has been modified",
        )
        with pytest.raises(ConflictError) as exc:
            KubectlStore().update(_DEPLOY)
        assert exc.value.key == "ci/buildkitd"

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_create_taken_name(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1,
            stderr='Error from server (AlreadyExists): deployments.apps "buildkitd" already exists',
        )
        with pytest.raises(AlreadyExistsError):
            KubectlStore().create(_DEPLOY)


# ═══════════════════════════════════════════════════════════════════
#  Transport failures
# ═══════════════════════════════════════════════════════════════════


class TestTransport:
    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="kubectl", timeout=15)
        with pytest.raises(StoreError, match="timed out"):
            KubectlStore().get("Secret", "ci", "x")

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_kubectl_missing(self, mock_run):
        mock_run.side_effect = FileNotFoundError("kubectl")
        with pytest.raises(StoreError, match="not found on PATH"):
            KubectlStore().get("Secret", "ci", "x")

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_invalid_json(self, mock_run):
        mock_run.return_value = _mock_result(stdout="not json")
        with pytest.raises(StoreError, match="Invalid JSON"):
            KubectlStore().get("Secret", "ci", "x")

    @patch("cops.adapters.store.kubectl._run_kubectl")
    def test_empty_output(self, mock_run):
        mock_run.return_value = _mock_result(stdout="  \n")
        assert KubectlStore().get("Secret", "ci", "x") == {}
