"""Buildkit child synthesis — one pure builder per child kind.

Every builder maps ``(spec, name, namespace)`` to a complete manifest
dict. All children reuse the Buildkit's own name, so re-running a builder
always targets the same object.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from cops.core.models.buildkit import BuildkitSpec
from cops.core.services.certs import CertificateBundle, issue_certificate_bundle
from cops.core.services.k8s_common import api_version_for_kind, object_meta

logger = logging.getLogger(__name__)


CONTAINER_NAME = "buildkitd"
PORT = 1234
PORT_NAME = "tcp"

SOCKET_PRIVILEGED = "/run/buildkit/buildkitd.sock"
SOCKET_ROOTLESS = "/run/user/1000/buildkit/buildkitd.sock"

DATA_DIR_PRIVILEGED = "/var/lib/buildkit"
DATA_DIR_ROOTLESS = "/home/user/.local/share/buildkit"

CERTS_VOLUME = "certs"
CERTS_MOUNT = "/certs"
CERT_KEYS = ("ca.pem", "cert.pem", "key.pem")

ROOTLESS_UID = 1000
TARGET_UTILIZATION = 80
MIN_REPLICAS = 1
MIN_AVAILABLE = 1

_PROBE_COMMAND = ["buildctl", "debug", "workers"]
_APPARMOR_ANNOTATION = f"container.apparmor.security.beta.kubernetes.io/{CONTAINER_NAME}"


def selector_labels(name: str) -> dict[str, str]:
    """Labels the Service, PDB and status lookup select pods by."""
    return {"app": name}


def workload_labels(name: str) -> dict[str, str]:
    return {"app": name, "service": "buildkit"}


def socket_path(rootless: bool) -> str:
    return SOCKET_ROOTLESS if rootless else SOCKET_PRIVILEGED


def _daemon_args(rootless: bool) -> list[str]:
    args = [
        "--addr", f"unix://{socket_path(rootless)}",
        "--addr", f"tcp://0.0.0.0:{PORT}",
    ]
    if rootless:
        args.append("--oci-worker-no-process-sandbox")
    args += [
        "--debug",
        "--tlscacert", f"{CERTS_MOUNT}/ca.pem",
        "--tlscert", f"{CERTS_MOUNT}/cert.pem",
        "--tlskey", f"{CERTS_MOUNT}/key.pem",
    ]
    return args


def _security_context(rootless: bool) -> dict[str, Any]:
    if not rootless:
        return {"privileged": True}
    return {
        "allowPrivilegeEscalation": False,
        "seccompProfile": {"type": "Unconfined"},
        "runAsUser": ROOTLESS_UID,
        "runAsGroup": ROOTLESS_UID,
    }


def _exec_probe() -> dict[str, Any]:
    return {
        "exec": {"command": list(_PROBE_COMMAND)},
        "initialDelaySeconds": 5,
        "periodSeconds": 30,
    }


def _arch_affinity(spec: BuildkitSpec) -> dict[str, Any] | None:
    if not spec.arch:
        return None
    return {
        "nodeAffinity": {
            "requiredDuringSchedulingIgnoredDuringExecution": {
                "nodeSelectorTerms": [{
                    "matchExpressions": [{
                        "key": "kubernetes.io/arch",
                        "operator": "In",
                        "values": [a.value for a in spec.arch],
                    }],
                }],
            },
        },
    }


def build_deployment(spec: BuildkitSpec, name: str, namespace: str) -> dict[str, Any]:
    """buildkitd Deployment — one replica; the HPA owns scale-out."""
    labels = workload_labels(name)
    data_dir = DATA_DIR_ROOTLESS if spec.rootless else DATA_DIR_PRIVILEGED

    container: dict[str, Any] = {
        "name": CONTAINER_NAME,
        "image": spec.image,
        "args": _daemon_args(spec.rootless),
        "ports": [{
            "name": PORT_NAME,
            "containerPort": PORT,
            "protocol": "TCP",
        }],
        "volumeMounts": [
            {"name": CERTS_VOLUME, "mountPath": CERTS_MOUNT, "readOnly": True},
            {"name": CONTAINER_NAME, "mountPath": data_dir},
        ],
        "readinessProbe": _exec_probe(),
        "livenessProbe": _exec_probe(),
        "securityContext": _security_context(spec.rootless),
    }
    resources = spec.resources.to_manifest()
    if resources:
        container["resources"] = resources

    pod_spec: dict[str, Any] = {
        "containers": [container],
        "volumes": [
            {"name": CERTS_VOLUME, "secret": {"secretName": name}},
            {"name": CONTAINER_NAME, "emptyDir": {}},
        ],
    }
    if spec.node_selector:
        pod_spec["nodeSelector"] = dict(spec.node_selector)
    affinity = _arch_affinity(spec)
    if affinity:
        pod_spec["affinity"] = affinity

    return {
        "apiVersion": api_version_for_kind("Deployment"),
        "kind": "Deployment",
        "metadata": object_meta(name, namespace, labels),
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {
                    "labels": dict(labels),
                    "annotations": {_APPARMOR_ANNOTATION: "unconfined"},
                },
                "spec": pod_spec,
            },
        },
    }


def build_service(spec: BuildkitSpec, name: str, namespace: str) -> dict[str, Any]:
    """Cluster-internal Service forwarding 1234/TCP to the daemon pods."""
    labels = selector_labels(name)
    return {
        "apiVersion": api_version_for_kind("Service"),
        "kind": "Service",
        "metadata": object_meta(name, namespace, labels),
        "spec": {
            "type": "ClusterIP",
            "ports": [{
                "name": PORT_NAME,
                "port": PORT,
                "targetPort": PORT_NAME,
                "protocol": "TCP",
            }],
            "selector": dict(labels),
        },
    }


def service_hosts(name: str, namespace: str) -> list[str]:
    """DNS names clients use to reach the Service."""
    return [
        name,
        f"{name}.{namespace}",
        f"{name}.{namespace}.svc",
        f"{name}.{namespace}.svc.cluster.local",
    ]


def _secret(name: str, namespace: str, data: dict[str, bytes]) -> dict[str, Any]:
    return {
        "apiVersion": api_version_for_kind("Secret"),
        "kind": "Secret",
        "metadata": object_meta(name, namespace, selector_labels(name)),
        "type": "Opaque",
        "data": {k: base64.b64encode(v).decode("ascii") for k, v in data.items()},
    }


def build_secret(
    spec: BuildkitSpec,
    name: str,
    namespace: str,
    bundle: CertificateBundle | None = None,
) -> dict[str, Any]:
    """Credential Secret holding ``ca.pem``, ``cert.pem`` and ``key.pem``.

    Issues a new bundle unless one is passed in. Only ever called when
    the Secret does not exist yet.
    """
    if bundle is None:
        bundle = issue_certificate_bundle(service_hosts(name, namespace))
    return _secret(name, namespace, {
        "ca.pem": bundle.ca_pem,
        "cert.pem": bundle.cert_pem,
        "key.pem": bundle.key_pem,
    })


def build_public_ca_secret(
    spec: BuildkitSpec,
    name: str,
    namespace: str,
    daemon_secret: dict[str, Any],
) -> dict[str, Any]:
    """Client-facing Secret named ``spec.public_certs`` carrying only ``ca.pem``."""
    return {
        "apiVersion": api_version_for_kind("Secret"),
        "kind": "Secret",
        "metadata": object_meta(spec.public_certs, namespace, selector_labels(name)),
        "type": "Opaque",
        "data": {"ca.pem": (daemon_secret.get("data") or {}).get("ca.pem", "")},
    }


def decode_secret_data(secret: dict[str, Any]) -> dict[str, bytes]:
    """Base64-decode a Secret's ``data`` block."""
    return {k: base64.b64decode(v) for k, v in (secret.get("data") or {}).items()}


def _utilization_metric(resource: str) -> dict[str, Any]:
    return {
        "type": "Resource",
        "resource": {
            "name": resource,
            "target": {
                "type": "Utilization",
                "averageUtilization": TARGET_UTILIZATION,
            },
        },
    }


def build_autoscaler(spec: BuildkitSpec, name: str, namespace: str) -> dict[str, Any]:
    """HPA: 1..max_replica, scaling on 80% CPU and memory utilization."""
    return {
        "apiVersion": api_version_for_kind("HorizontalPodAutoscaler"),
        "kind": "HorizontalPodAutoscaler",
        "metadata": object_meta(name, namespace, selector_labels(name)),
        "spec": {
            "scaleTargetRef": {
                "apiVersion": api_version_for_kind("Deployment"),
                "kind": "Deployment",
                "name": name,
            },
            "minReplicas": MIN_REPLICAS,
            "maxReplicas": spec.max_replica,
            "metrics": [
                _utilization_metric("cpu"),
                _utilization_metric("memory"),
            ],
        },
    }


def build_disruption_budget(spec: BuildkitSpec, name: str, namespace: str) -> dict[str, Any]:
    """PDB keeping at least one daemon up through voluntary disruption."""
    labels = selector_labels(name)
    return {
        "apiVersion": api_version_for_kind("PodDisruptionBudget"),
        "kind": "PodDisruptionBudget",
        "metadata": object_meta(name, namespace, labels),
        "spec": {
            "selector": {"matchLabels": dict(labels)},
            "minAvailable": MIN_AVAILABLE,
        },
    }
