"""
Kubectl store — the live cluster, reached through the kubectl CLI.

Every call is one kubectl invocation with JSON in and JSON out. Server
errors are classified from kubectl's stderr into the store taxonomy:

    (NotFound)       → NotFoundError
    (Conflict)       → ConflictError
    (AlreadyExists)  → AlreadyExistsError
    anything else    → StoreError
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any

from cops.adapters.store.base import ResourceStore
from cops.core.errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from cops.core.models.resource import NamespacedName
from cops.core.services.k8s_common import _run_kubectl, kubectl_resource, label_selector

logger = logging.getLogger(__name__)


def _classify(stderr: str, *, kind: str, key: str) -> StoreError:
    """Map kubectl's stderr to a store error."""
    message = stderr.strip() or "kubectl failed with no output"
    if "(NotFound)" in message or " not found" in message:
        return NotFoundError(message, kind=kind, key=key)
    if "(Conflict)" in message or "the object has been modified" in message:
        return ConflictError(message, kind=kind, key=key)
    if "(AlreadyExists)" in message or "already exists" in message:
        return AlreadyExistsError(message, kind=kind, key=key)
    return StoreError(message, kind=kind, key=key)


class KubectlStore(ResourceStore):
    """Resource store backed by ``kubectl`` and the current kubeconfig context."""

    def __init__(self, timeout: int = 15, context: str | None = None):
        self._timeout = timeout
        self._context = context

    @property
    def name(self) -> str:
        return "kubectl"

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        return self._call(
            ["get", kubectl_resource(kind), name, "-n", namespace, "-o", "json"],
            kind=kind, key=f"{namespace}/{name}",
        )

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        return self._write(["create", "-f", "-", "-o", "json"], obj)

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        return self._write(["replace", "-f", "-", "-o", "json"], obj)

    def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        return self._write(["replace", "--subresource=status", "-f", "-", "-o", "json"], obj)

    def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        args = ["get", kubectl_resource(kind)]
        args += ["-n", namespace] if namespace else ["--all-namespaces"]
        if labels:
            args += ["-l", label_selector(labels)]
        args += ["-o", "json"]
        data = self._call(args, kind=kind, key=namespace or "*")
        return list(data.get("items") or [])

    # ── Internals ────────────────────────────────────────────────

    def _write(self, args: list[str], obj: dict[str, Any]) -> dict[str, Any]:
        return self._call(
            args,
            kind=obj.get("kind", ""),
            key=str(NamespacedName.of(obj)),
            input=json.dumps(obj),
        )

    def _call(
        self,
        args: list[str],
        *,
        kind: str,
        key: str,
        input: str | None = None,
    ) -> dict[str, Any]:
        if self._context:
            args = ["--context", self._context, *args]
        logger.debug("kubectl %s", " ".join(args))

        try:
            result = _run_kubectl(*args, input=input, timeout=self._timeout)
        except subprocess.TimeoutExpired as e:
            raise StoreError(
                f"kubectl timed out after {self._timeout}s", kind=kind, key=key,
            ) from e
        except FileNotFoundError as e:
            raise StoreError("kubectl not found on PATH", kind=kind, key=key) from e

        if result.returncode != 0:
            raise _classify(result.stderr, kind=kind, key=key)

        try:
            return json.loads(result.stdout) if result.stdout.strip() else {}
        except json.JSONDecodeError as e:
            raise StoreError(f"Invalid JSON from kubectl: {e}", kind=kind, key=key) from e
