"""
Resource store — the protocol contract between the core and the cluster.

The core only ever talks to the cluster through this interface. Objects
are plain manifest dicts; every method either succeeds or raises one of
the store errors from ``cops.core.errors``:

    get            → NotFoundError | StoreError
    create         → AlreadyExistsError | StoreError
    update         → NotFoundError | ConflictError | StoreError
    update_status  → NotFoundError | ConflictError | StoreError
    list           → StoreError
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ResourceStore(ABC):
    """Abstract base class for resource stores.

    Implementations must give read-after-write consistency and reject
    updates whose ``metadata.resourceVersion`` is stale with
    ``ConflictError``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Store identifier (e.g., 'kubectl', 'memory')."""

    @abstractmethod
    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        """Fetch one object by kind and namespaced name."""

    @abstractmethod
    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create an object; returns the stored form."""

    @abstractmethod
    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace an object in full; returns the stored form."""

    @abstractmethod
    def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """List objects of a kind, optionally scoped to a namespace and labels."""

    @abstractmethod
    def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Write only the ``status`` of a declared resource."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
