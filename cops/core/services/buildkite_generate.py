"""Buildkite child synthesis — agent controller, its config and RBAC.
"""

from __future__ import annotations

import logging
from typing import Any

import yaml

from cops.core.models.buildkite import BuildkiteSpec
from cops.core.services.k8s_common import api_version_for_kind, object_meta

logger = logging.getLogger(__name__)


CONTAINER_NAME = "controller"
CONFIG_KEY = "config.yaml"
CONFIG_PATH = "/etc/config.yaml"

RBAC_API_GROUP = "rbac.authorization.k8s.io"
_VERBS = ["get", "list", "update", "delete", "watch", "create"]


def controller_labels(name: str) -> dict[str, str]:
    return {"app": name, "service": "buildkite"}


def build_config_map(spec: BuildkiteSpec, name: str, namespace: str) -> dict[str, Any]:
    """Controller config: the namespace it schedules jobs in and its token Secret."""
    config = {
        "namespace": namespace,
        "agent-token-secret": spec.secret,
    }
    return {
        "apiVersion": api_version_for_kind("ConfigMap"),
        "kind": "ConfigMap",
        "metadata": object_meta(name, namespace, controller_labels(name)),
        "data": {
            CONFIG_KEY: yaml.safe_dump(config, default_flow_style=False, sort_keys=True),
        },
    }


def build_deployment(spec: BuildkiteSpec, name: str, namespace: str) -> dict[str, Any]:
    """Single-replica controller running under its own ServiceAccount."""
    labels = controller_labels(name)

    container: dict[str, Any] = {
        "name": CONTAINER_NAME,
        "image": spec.image,
        "env": [{"name": "CONFIG", "value": CONFIG_PATH}],
        "volumeMounts": [{
            "name": "config",
            "mountPath": CONFIG_PATH,
            "subPath": CONFIG_KEY,
            "readOnly": True,
        }],
        "securityContext": {
            "allowPrivilegeEscalation": False,
            "readOnlyRootFilesystem": True,
            "runAsNonRoot": True,
            "capabilities": {"drop": ["ALL"]},
            "seccompProfile": {"type": "RuntimeDefault"},
        },
    }
    if spec.secret:
        container["envFrom"] = [{"secretRef": {"name": spec.secret}}]
    resources = spec.resources.to_manifest()
    if resources:
        container["resources"] = resources

    pod_spec: dict[str, Any] = {
        "serviceAccountName": name,
        "containers": [container],
        "volumes": [{"name": "config", "configMap": {"name": name}}],
    }
    if spec.node_selector:
        pod_spec["nodeSelector"] = dict(spec.node_selector)

    return {
        "apiVersion": api_version_for_kind("Deployment"),
        "kind": "Deployment",
        "metadata": object_meta(name, namespace, labels),
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": pod_spec,
            },
        },
    }


def build_service_account(spec: BuildkiteSpec, name: str, namespace: str) -> dict[str, Any]:
    return {
        "apiVersion": api_version_for_kind("ServiceAccount"),
        "kind": "ServiceAccount",
        "metadata": object_meta(name, namespace, controller_labels(name)),
    }


def build_role(spec: BuildkiteSpec, name: str, namespace: str) -> dict[str, Any]:
    """Namespace-scoped Role: full job and pod lifecycle, nothing else."""
    return {
        "apiVersion": api_version_for_kind("Role"),
        "kind": "Role",
        "metadata": object_meta(name, namespace, controller_labels(name)),
        "rules": [
            {"apiGroups": ["batch"], "resources": ["jobs"], "verbs": list(_VERBS)},
            {"apiGroups": [""], "resources": ["pods"], "verbs": list(_VERBS)},
        ],
    }


def build_role_binding(spec: BuildkiteSpec, name: str, namespace: str) -> dict[str, Any]:
    return {
        "apiVersion": api_version_for_kind("RoleBinding"),
        "kind": "RoleBinding",
        "metadata": object_meta(name, namespace, controller_labels(name)),
        "roleRef": {
            "apiGroup": RBAC_API_GROUP,
            "kind": "Role",
            "name": name,
        },
        "subjects": [{
            "kind": "ServiceAccount",
            "name": name,
            "namespace": namespace,
        }],
    }
