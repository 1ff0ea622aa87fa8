"""
Convergence primitive — make one stored object match its desired form.

    ensure_applied   fetch → create if absent, full update if present
    ensure_created   fetch → create if absent, leave untouched if present

Neither retries, neither deletes. A stale update surfaces as
ConflictError; every other store error propagates unchanged.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any, Literal

from cops.adapters.store.base import ResourceStore
from cops.core.errors import NotFoundError
from cops.core.models.resource import NamespacedName

logger = logging.getLogger(__name__)

Outcome = Literal["created", "updated", "unchanged"]

# Fields the API server assigns on create and refuses to have cleared
_SERVER_ASSIGNED: dict[str, tuple[str, ...]] = {
    "Service": ("clusterIP", "clusterIPs"),
}


def _carry_server_fields(desired: dict[str, Any], existing: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(desired)
    meta = merged.setdefault("metadata", {})
    version = (existing.get("metadata") or {}).get("resourceVersion")
    if version:
        meta["resourceVersion"] = version

    for field in _SERVER_ASSIGNED.get(merged.get("kind", ""), ()):
        value = (existing.get("spec") or {}).get(field)
        if value and field not in merged.get("spec", {}):
            merged.setdefault("spec", {})[field] = copy.deepcopy(value)
    return merged


def ensure_applied(store: ResourceStore, desired: dict[str, Any]) -> Outcome:
    """Create ``desired`` or replace the stored object with it.

    The update is conditioned on the resourceVersion just read, so a
    concurrent writer makes it fail with ConflictError instead of being
    silently overwritten.
    """
    kind = desired.get("kind", "")
    key = NamespacedName.of(desired)

    try:
        existing = store.get(kind, key.namespace, key.name)
    except NotFoundError:
        store.create(copy.deepcopy(desired))
        logger.info("Created %s %s", kind, key)
        return "created"

    store.update(_carry_server_fields(desired, existing))
    logger.debug("Updated %s %s", kind, key)
    return "updated"


def ensure_created(
    store: ResourceStore,
    kind: str,
    namespace: str,
    name: str,
    factory: Callable[[], dict[str, Any]],
) -> Outcome:
    """Create the object from ``factory()`` only if nothing is stored yet.

    ``factory`` is not called when the object exists, so write-once
    material (credentials) is never regenerated or overwritten.
    """
    try:
        store.get(kind, namespace, name)
    except NotFoundError:
        store.create(factory())
        logger.info("Created %s %s/%s", kind, namespace, name)
        return "created"

    logger.debug("%s %s/%s exists, leaving it untouched", kind, namespace, name)
    return "unchanged"
