"""
Buildkite — the declared resource for a CI-agent controller.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cops.core.models.resource import API_VERSION, ObjectMeta, ResourceRequirements

KIND = "Buildkite"


class BuildkiteSpec(BaseModel):
    """Desired state of an agent controller."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image: str = "ghcr.io/buildkite/agent-stack-k8s/controller:latest"
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    secret: str = ""                  # existing Secret with the agent token
    node_selector: dict[str, str] = Field(default_factory=dict, alias="nodeSelector")


class BuildkiteStatus(BaseModel):
    """Reserved; the agent-controller pipeline records no status."""


class Buildkite(BaseModel):
    """A Buildkite declared resource."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = KIND
    metadata: ObjectMeta
    spec: BuildkiteSpec = Field(default_factory=BuildkiteSpec)
    status: BuildkiteStatus = Field(default_factory=BuildkiteStatus)

    @classmethod
    def from_manifest(cls, obj: dict[str, Any]) -> Buildkite:
        return cls.model_validate(obj)

    def to_manifest(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
