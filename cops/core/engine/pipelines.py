"""
Pipelines — the ordered child steps for each declared-resource kind.

    Buildkit:  secret → public CA secret → deployment → service
               → autoscaler → disruption budget   (+ status)
    Buildkite: config map → deployment → service account → role
               → role binding

The credential Secret is converged before the Deployment that mounts
it; the ServiceAccount before the RoleBinding that names it. Only the
credential Secret is create-once. The public CA Secret is a copy of its
``ca.pem`` and is re-applied every pass so it follows a re-issued bundle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from cops.adapters.store.base import ResourceStore
from cops.core.config.loader import OperatorConfig
from cops.core.engine.reconciler import PassContext, Pipeline, ReconcileReport, Step, reconcile
from cops.core.models.buildkit import KIND as BUILDKIT, Buildkit
from cops.core.models.buildkite import KIND as BUILDKITE, Buildkite
from cops.core.observability.metrics import MetricsRegistry
from cops.core.services import buildkit_generate as bk
from cops.core.services import buildkite_generate as bke
from cops.core.services.k8s_common import pod_dns_identity

logger = logging.getLogger(__name__)

Builder = Callable[[Any, str, str], dict[str, Any]]

STATE_AVAILABLE = "Available"


def _from_spec(builder: Builder) -> Callable[[PassContext], dict[str, Any]]:
    return lambda ctx: builder(ctx.spec, ctx.name, ctx.namespace)


def _public_ca_secret(ctx: PassContext) -> dict[str, Any]:
    daemon_secret = ctx.store.get("Secret", ctx.namespace, ctx.name)
    return bk.build_public_ca_secret(ctx.spec, ctx.name, ctx.namespace, daemon_secret)


def fleet_nodes(ctx: PassContext) -> list[str]:
    """Pod-DNS identities of the daemon pods, in list order, deduplicated.

    Pods not yet bound to a node have no host IP and are left out.
    """
    pods = ctx.store.list("Pod", ctx.namespace, bk.selector_labels(ctx.name))
    nodes: list[str] = []
    for pod in pods:
        host_ip = (pod.get("status") or {}).get("hostIP")
        if not host_ip:
            continue
        identity = pod_dns_identity(host_ip, ctx.namespace)
        if identity not in nodes:
            nodes.append(identity)
    return nodes


def _fleet_status(ctx: PassContext) -> dict[str, Any]:
    return {
        "status": True,
        "state": STATE_AVAILABLE,
        "nodes": fleet_nodes(ctx),
    }


def buildkit_pipeline(config: OperatorConfig | None = None) -> Pipeline:
    config = config or OperatorConfig()
    steps = [
        Step("secret", "Secret", _from_spec(bk.build_secret), create_only=True),
        Step(
            "public-ca", "Secret", _public_ca_secret,
            when=lambda ctx: bool(ctx.spec.public_certs) and ctx.spec.public_certs != ctx.name,
            target=lambda ctx: ctx.spec.public_certs or ctx.name,
        ),
        Step("deployment", "Deployment", _from_spec(bk.build_deployment)),
        Step("service", "Service", _from_spec(bk.build_service)),
        Step("autoscaler", "HorizontalPodAutoscaler", _from_spec(bk.build_autoscaler)),
    ]
    if config.enable_disruption_budget:
        steps.append(
            Step("disruption-budget", "PodDisruptionBudget", _from_spec(bk.build_disruption_budget)),
        )
    return Pipeline(kind=BUILDKIT, model=Buildkit, steps=tuple(steps), status=_fleet_status)


def buildkite_pipeline(config: OperatorConfig | None = None) -> Pipeline:
    steps = (
        Step("config", "ConfigMap", _from_spec(bke.build_config_map)),
        Step("deployment", "Deployment", _from_spec(bke.build_deployment)),
        Step("service-account", "ServiceAccount", _from_spec(bke.build_service_account)),
        Step("role", "Role", _from_spec(bke.build_role)),
        Step("role-binding", "RoleBinding", _from_spec(bke.build_role_binding)),
    )
    return Pipeline(kind=BUILDKITE, model=Buildkite, steps=steps)


PIPELINES: dict[str, Callable[[OperatorConfig | None], Pipeline]] = {
    BUILDKIT: buildkit_pipeline,
    BUILDKITE: buildkite_pipeline,
}


def pipeline_for(kind: str, config: OperatorConfig | None = None) -> Pipeline:
    """Resolve a pipeline by kind (case-insensitive)."""
    for registered, factory in PIPELINES.items():
        if registered.lower() == kind.lower():
            return factory(config)
    raise KeyError(f"Unknown declared-resource kind: {kind!r} (known: {', '.join(PIPELINES)})")


def reconcile_resource(
    store: ResourceStore,
    kind: str,
    namespace: str,
    name: str,
    config: OperatorConfig | None = None,
    metrics: MetricsRegistry | None = None,
) -> ReconcileReport:
    """Reconcile one declared resource of ``kind`` with the given config."""
    config = config or OperatorConfig()
    return reconcile(
        store,
        pipeline_for(kind, config),
        namespace,
        name,
        owner_references=config.owner_references,
        metrics=metrics,
    )
