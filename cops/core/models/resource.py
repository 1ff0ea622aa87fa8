"""
Shared resource primitives — identity and metadata common to every object.

Child objects travel as plain manifest dicts (the same shape the store
exchanges). Declared resources are parsed into typed models, and these
are the pieces they share.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

API_GROUP = "cops.io"
API_VERSION = f"{API_GROUP}/v1alpha1"


@dataclass(frozen=True)
class NamespacedName:
    """Store key of an object: namespace + name."""

    namespace: str
    name: str

    @classmethod
    def parse(cls, key: str, default_namespace: str = "default") -> NamespacedName:
        """Parse ``ns/name`` (or a bare ``name`` in the default namespace)."""
        if "/" in key:
            namespace, _, name = key.partition("/")
        else:
            namespace, name = default_namespace, key
        if not namespace or not name:
            raise ValueError(f"Invalid object key: {key!r} (expected namespace/name)")
        return cls(namespace=namespace, name=name)

    @classmethod
    def of(cls, obj: dict[str, Any]) -> NamespacedName:
        """Key of a manifest dict."""
        meta = obj.get("metadata") or {}
        return cls(namespace=meta.get("namespace", ""), name=meta.get("name", ""))

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class ObjectMeta(BaseModel):
    """The subset of object metadata the operator reads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    namespace: str = "default"
    uid: str = ""
    resource_version: str = Field(default="", alias="resourceVersion")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class ResourceRequirements(BaseModel):
    """Compute requests/limits, passed through to the workload verbatim."""

    model_config = ConfigDict(extra="ignore")

    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)

    @field_validator("requests", "limits", mode="before")
    @classmethod
    def _quantities_as_str(cls, value: Any) -> Any:
        # YAML turns `cpu: 1` into an int; quantities are strings on the wire
        if isinstance(value, dict):
            return {k: str(v) for k, v in value.items()}
        return value

    def to_manifest(self) -> dict[str, dict[str, str]]:
        out: dict[str, dict[str, str]] = {}
        if self.requests:
            out["requests"] = dict(self.requests)
        if self.limits:
            out["limits"] = dict(self.limits)
        return out
