"""
Memory store — in-process resource store for tests and dry runs.

Behaves like the API server where the operator can observe it:
resourceVersion bumps on every write, uids are assigned on create,
stale updates are rejected with ConflictError. Every mutation is
logged, and failures can be injected per (verb, kind).
"""

from __future__ import annotations

import copy
import itertools
import uuid
from typing import Any

from cops.adapters.store.base import ResourceStore
from cops.core.errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from cops.core.models.resource import NamespacedName
from cops.core.services.k8s_common import labels_match

_Key = tuple[str, str, str]  # (kind, namespace, name)


class MemoryStore(ResourceStore):
    """Dict-backed store with optimistic concurrency.

    Attributes:
        mutations: ``(verb, kind, "ns/name")`` for every successful write.
    """

    def __init__(self, objects: list[dict[str, Any]] | None = None):
        self._objects: dict[_Key, dict[str, Any]] = {}
        self._versions = itertools.count(1)
        self._failures: dict[tuple[str, str], StoreError] = {}
        self.mutations: list[tuple[str, str, str]] = []
        for obj in objects or []:
            self.seed(obj)

    @property
    def name(self) -> str:
        return "memory"

    # ── Test helpers ─────────────────────────────────────────────

    def seed(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Insert an object directly, without logging a mutation."""
        stored = self._stamp(copy.deepcopy(obj), new=True)
        self._objects[self._key(stored)] = stored
        return copy.deepcopy(stored)

    def remove(self, kind: str, namespace: str, name: str) -> None:
        """Drop an object directly, as if another actor had deleted it."""
        self._objects.pop((kind, namespace, name), None)

    def fail_on(self, verb: str, kind: str, error: StoreError) -> None:
        """Make every ``verb`` on ``kind`` raise ``error`` until cleared."""
        self._failures[(verb, kind)] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def peek(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        """Stored object or None, without going through failure injection."""
        obj = self._objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def writes(self, verb: str | None = None) -> list[tuple[str, str, str]]:
        return [m for m in self.mutations if verb is None or m[0] == verb]

    # ── ResourceStore ────────────────────────────────────────────

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        self._maybe_fail("get", kind)
        obj = self._objects.get((kind, namespace, name))
        if obj is None:
            raise NotFoundError(
                f'{kind} "{namespace}/{name}" not found',
                kind=kind, key=f"{namespace}/{name}",
            )
        return copy.deepcopy(obj)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        kind = obj.get("kind", "")
        self._maybe_fail("create", kind)
        key = self._key(obj)
        if key in self._objects:
            raise AlreadyExistsError(
                f'{kind} "{key[1]}/{key[2]}" already exists',
                kind=kind, key=f"{key[1]}/{key[2]}",
            )
        stored = self._stamp(copy.deepcopy(obj), new=True)
        self._objects[key] = stored
        self._log("create", stored)
        return copy.deepcopy(stored)

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        kind = obj.get("kind", "")
        self._maybe_fail("update", kind)
        current = self._current_for_write(obj)
        stored = copy.deepcopy(obj)
        stored["metadata"]["uid"] = current["metadata"]["uid"]
        if "status" in current:
            stored["status"] = copy.deepcopy(current["status"])
        stored = self._stamp(stored)
        self._objects[self._key(stored)] = stored
        self._log("update", stored)
        return copy.deepcopy(stored)

    def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        kind = obj.get("kind", "")
        self._maybe_fail("update_status", kind)
        current = self._current_for_write(obj)
        stored = copy.deepcopy(current)
        stored["status"] = copy.deepcopy(obj.get("status") or {})
        stored = self._stamp(stored)
        self._objects[self._key(stored)] = stored
        self._log("update_status", stored)
        return copy.deepcopy(stored)

    def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        self._maybe_fail("list", kind)
        found = []
        for (k, ns, _), obj in sorted(self._objects.items()):
            if k != kind or (namespace and ns != namespace):
                continue
            if labels and not labels_match(obj["metadata"].get("labels"), labels):
                continue
            found.append(copy.deepcopy(obj))
        return found

    # ── Internals ────────────────────────────────────────────────

    @staticmethod
    def _key(obj: dict[str, Any]) -> _Key:
        nn = NamespacedName.of(obj)
        return (obj.get("kind", ""), nn.namespace, nn.name)

    def _stamp(self, obj: dict[str, Any], *, new: bool = False) -> dict[str, Any]:
        meta = obj.setdefault("metadata", {})
        if new:
            meta.setdefault("uid", str(uuid.uuid4()))
        meta["resourceVersion"] = str(next(self._versions))
        return obj

    def _current_for_write(self, obj: dict[str, Any]) -> dict[str, Any]:
        kind, namespace, name = self._key(obj)
        current = self._objects.get((kind, namespace, name))
        if current is None:
            raise NotFoundError(
                f'{kind} "{namespace}/{name}" not found',
                kind=kind, key=f"{namespace}/{name}",
            )
        sent = obj.get("metadata", {}).get("resourceVersion")
        if sent and sent != current["metadata"]["resourceVersion"]:
            raise ConflictError(
                f'Operation cannot be fulfilled on {kind} "{name}": '
                "the object has been modified; please apply your changes "
                "to the latest version and try again",
                kind=kind, key=f"{namespace}/{name}",
            )
        return current

    def _maybe_fail(self, verb: str, kind: str) -> None:
        error = self._failures.get((verb, kind))
        if error is not None:
            raise error

    def _log(self, verb: str, obj: dict[str, Any]) -> None:
        self.mutations.append((verb, obj.get("kind", ""), str(NamespacedName.of(obj))))
