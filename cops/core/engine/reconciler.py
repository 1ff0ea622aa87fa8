"""
Reconciler — one convergence pass for one declared resource.

A pipeline is an ordered list of steps (synthesize one child, converge
it) plus an optional status aggregation. The same loop drives every
declared-resource kind; only the pipeline differs.

Flow:
    get declared resource → for each step: synthesize → converge
    → aggregate status → update_status

A missing declared resource ends the pass as a no-op. Any error aborts
the remaining steps and propagates; status is written only after every
step has succeeded.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from cops.adapters.store.base import ResourceStore
from cops.core.errors import CopsError, InvalidResourceError, NotFoundError
from cops.core.observability.logging_config import resource_context
from cops.core.observability.metrics import MetricsRegistry
from cops.core.services.converge import ensure_applied, ensure_created
from cops.core.services.k8s_common import with_owner

logger = logging.getLogger(__name__)


@dataclass
class PassContext:
    """What a step sees: the store, the declared resource and its parsed spec."""

    store: ResourceStore
    resource: dict[str, Any]
    spec: Any
    name: str
    namespace: str


@dataclass(frozen=True)
class Step:
    """Synthesize one child and converge it.

    ``create_only`` steps go through ``ensure_created``: the child is
    written once and never touched again while it exists.
    """

    name: str
    kind: str
    synthesize: Callable[[PassContext], dict[str, Any]]
    create_only: bool = False
    when: Callable[[PassContext], bool] | None = None
    target: Callable[[PassContext], str] | None = None   # child name, if not the owner's

    def applies(self, ctx: PassContext) -> bool:
        return self.when is None or self.when(ctx)

    def target_name(self, ctx: PassContext) -> str:
        return self.target(ctx) if self.target else ctx.name


@dataclass(frozen=True)
class Pipeline:
    """Ordered steps for one declared-resource kind."""

    kind: str
    model: type[BaseModel]
    steps: tuple[Step, ...]
    status: Callable[[PassContext], dict[str, Any]] | None = None


@dataclass
class StepResult:
    step: str
    kind: str
    name: str
    action: str   # created, updated, unchanged, skipped


@dataclass
class ReconcileReport:
    """Outcome of one pass."""

    kind: str
    namespace: str
    name: str
    outcome: str = "reconciled"    # reconciled, not-found
    steps: list[StepResult] = field(default_factory=list)
    status: dict[str, Any] | None = None
    duration_ms: float = 0.0

    @property
    def writes(self) -> int:
        return sum(1 for s in self.steps if s.action in ("created", "updated"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "namespace": self.namespace,
            "name": self.name,
            "outcome": self.outcome,
            "steps": [
                {"step": s.step, "kind": s.kind, "name": s.name, "action": s.action}
                for s in self.steps
            ],
            "status": self.status,
            "duration_ms": round(self.duration_ms, 2),
        }


def _parse(pipeline: Pipeline, resource: dict[str, Any]) -> Any:
    try:
        return pipeline.model.model_validate(resource).spec
    except ValidationError as e:
        raise InvalidResourceError(
            f"Invalid {pipeline.kind} spec: {e.error_count()} validation error(s): {e}"
        ) from e


def _run_step(
    step: Step,
    ctx: PassContext,
    owner_references: bool,
) -> StepResult:
    child = step.target_name(ctx)
    if not step.applies(ctx):
        return StepResult(step.name, step.kind, child, "skipped")

    def desired() -> dict[str, Any]:
        obj = step.synthesize(ctx)
        return with_owner(obj, ctx.resource) if owner_references else obj

    if step.create_only:
        action = ensure_created(ctx.store, step.kind, ctx.namespace, child, desired)
    else:
        action = ensure_applied(ctx.store, desired())
    return StepResult(step.name, step.kind, child, action)


def reconcile(
    store: ResourceStore,
    pipeline: Pipeline,
    namespace: str,
    name: str,
    *,
    owner_references: bool = True,
    metrics: MetricsRegistry | None = None,
) -> ReconcileReport:
    """Run one convergence pass for ``namespace/name``.

    Raises:
        CopsError: The first failure, unchanged. Nothing after it ran
            and the declared resource's status was not touched.
    """
    metrics = metrics or MetricsRegistry()
    report = ReconcileReport(kind=pipeline.kind, namespace=namespace, name=name)

    with resource_context(f"{pipeline.kind}/{namespace}/{name}"):
        try:
            with metrics.timer("reconcile_duration_ms", kind=pipeline.kind) as timer:
                _reconcile(store, pipeline, report, owner_references)
        except CopsError as e:
            metrics.counter("reconcile_errors", kind=pipeline.kind, error=type(e).__name__).inc()
            logger.warning(
                "Reconcile %s %s/%s failed after %d step(s): %s",
                pipeline.kind, namespace, name, len(report.steps), e,
            )
            raise

    report.duration_ms = timer.elapsed_ms
    metrics.counter("reconcile_total", kind=pipeline.kind, outcome=report.outcome).inc()
    for s in report.steps:
        if s.action in ("created", "updated"):
            metrics.counter("child_writes", kind=s.kind, action=s.action).inc()
    return report


def _reconcile(
    store: ResourceStore,
    pipeline: Pipeline,
    report: ReconcileReport,
    owner_references: bool,
) -> None:
    namespace, name = report.namespace, report.name

    try:
        resource = store.get(pipeline.kind, namespace, name)
    except NotFoundError:
        logger.debug("%s %s/%s is gone, nothing to do", pipeline.kind, namespace, name)
        report.outcome = "not-found"
        return

    ctx = PassContext(
        store=store,
        resource=resource,
        spec=_parse(pipeline, resource),
        name=name,
        namespace=namespace,
    )

    for step in pipeline.steps:
        report.steps.append(_run_step(step, ctx, owner_references))

    if pipeline.status is not None:
        status = pipeline.status(ctx)
        updated = dict(resource)
        updated["status"] = status
        store.update_status(updated)
        report.status = status

    logger.info(
        "Reconciled %s %s/%s: %s",
        pipeline.kind, namespace, name,
        ", ".join(f"{s.step}={s.action}" for s in report.steps),
    )
