"""
K8s shared constants and low-level helpers.

Imported by the generators, the convergence primitive and the kubectl
store. Must NOT import from any sibling generator module to avoid
circular imports.
"""

from __future__ import annotations

import copy
import logging
import subprocess
from typing import Any

from cops.core.models.resource import API_GROUP, API_VERSION

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════


_API_VERSIONS: dict[str, str] = {
    "Deployment": "apps/v1",
    "Service": "v1",
    "Secret": "v1",
    "ConfigMap": "v1",
    "ServiceAccount": "v1",
    "Pod": "v1",
    "Role": "rbac.authorization.k8s.io/v1",
    "RoleBinding": "rbac.authorization.k8s.io/v1",
    "HorizontalPodAutoscaler": "autoscaling/v2",
    "PodDisruptionBudget": "policy/v1",
    "Buildkit": API_VERSION,
    "Buildkite": API_VERSION,
}

# Fully-qualified kubectl resource names, unambiguous across API groups
_KUBECTL_RESOURCES: dict[str, str] = {
    "Deployment": "deployments.apps",
    "Service": "services",
    "Secret": "secrets",
    "ConfigMap": "configmaps",
    "ServiceAccount": "serviceaccounts",
    "Pod": "pods",
    "Role": "roles.rbac.authorization.k8s.io",
    "RoleBinding": "rolebindings.rbac.authorization.k8s.io",
    "HorizontalPodAutoscaler": "horizontalpodautoscalers.autoscaling",
    "PodDisruptionBudget": "poddisruptionbudgets.policy",
    "Buildkit": f"buildkits.{API_GROUP}",
    "Buildkite": f"buildkites.{API_GROUP}",
}

POD_DNS_SUFFIX = "pod.cluster.local"


# ═══════════════════════════════════════════════════════════════════
#  Shared Helpers
# ═══════════════════════════════════════════════════════════════════


def _run_kubectl(
    *args: str,
    input: str | None = None,
    timeout: int = 15,
) -> subprocess.CompletedProcess[str]:
    """Run a kubectl command and return the result."""
    return subprocess.run(
        ["kubectl", *args],
        capture_output=True,
        text=True,
        input=input,
        timeout=timeout,
    )


def api_version_for_kind(kind: str) -> str:
    """Resolve the apiVersion the operator writes for a kind."""
    return _API_VERSIONS.get(kind, "v1")


def kubectl_resource(kind: str) -> str:
    """kubectl resource name for a kind (``Deployment`` → ``deployments.apps``)."""
    return _KUBECTL_RESOURCES.get(kind, f"{kind.lower()}s")


def object_meta(
    name: str,
    namespace: str,
    labels: dict[str, str],
    *,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Metadata block shared by every synthesized child."""
    meta: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "labels": dict(labels),
    }
    if annotations:
        meta["annotations"] = dict(annotations)
    return meta


def label_selector(labels: dict[str, str]) -> str:
    """Render a label map as a kubectl ``-l`` selector (``a=b,c=d``)."""
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def labels_match(obj_labels: dict[str, str] | None, selector: dict[str, str]) -> bool:
    """Equality-based selector match."""
    obj_labels = obj_labels or {}
    return all(obj_labels.get(k) == v for k, v in selector.items())


def with_owner(obj: dict[str, Any], owner: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``obj`` carrying a controller ownerReference to ``owner``.

    The store's garbage collector deletes owned children when the owner
    goes away. Owners without a uid (not yet persisted) are skipped.
    """
    owner_meta = owner.get("metadata") or {}
    uid = owner_meta.get("uid")
    if not uid:
        return obj

    owned = copy.deepcopy(obj)
    owned["metadata"]["ownerReferences"] = [{
        "apiVersion": owner.get("apiVersion", API_VERSION),
        "kind": owner.get("kind", ""),
        "name": owner_meta.get("name", ""),
        "uid": uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }]
    return owned


def pod_dns_identity(host_ip: str, namespace: str) -> str:
    """``10.0.0.12`` in ``ci`` → ``10-0-0-12.ci.pod.cluster.local``."""
    return f"{host_ip.replace('.', '-')}.{namespace}.{POD_DNS_SUFFIX}"
