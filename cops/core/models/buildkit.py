"""
Buildkit — the declared resource for a shared buildkitd fleet.

One Buildkit object owns a Deployment, Service, credential Secret,
HorizontalPodAutoscaler and (optionally) a PodDisruptionBudget, all
named after the Buildkit itself.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cops.core.models.resource import API_VERSION, ObjectMeta, ResourceRequirements

KIND = "Buildkit"


class CloudProvider(StrEnum):
    AWS = "aws"
    GCP = "gcp"


class Arch(StrEnum):
    AMD64 = "amd64"
    ARM64 = "arm64"


# Older manifests carry the enum ordinal instead of its name
_CLOUD_ORDINALS = {0: CloudProvider.AWS, 1: CloudProvider.GCP}
_ARCH_ORDINALS = {0: Arch.AMD64, 1: Arch.ARM64}


class BuildkitSpec(BaseModel):
    """Desired state of a buildkitd fleet."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cloud: CloudProvider = CloudProvider.AWS
    arch: list[Arch] = Field(default_factory=list)
    image: str = "moby/buildkit:latest"
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    max_replica: int = Field(default=1, ge=1)
    public_certs: str = ""
    daemon_certs: str = ""
    rootless: bool = False
    node_selector: dict[str, str] = Field(default_factory=dict, alias="nodeSelector")

    @field_validator("cloud", mode="before")
    @classmethod
    def _cloud_ordinal(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return _CLOUD_ORDINALS.get(value, value)
        return value

    @field_validator("arch", mode="before")
    @classmethod
    def _arch_ordinals(cls, value: Any) -> Any:
        if isinstance(value, (str, int)):
            value = [value]
        if isinstance(value, list):
            return [
                _ARCH_ORDINALS.get(v, v) if isinstance(v, int) and not isinstance(v, bool) else v
                for v in value
            ]
        return value


class BuildkitStatus(BaseModel):
    """Observed state, written back after a fully successful pass."""

    status: bool = False
    state: str = ""
    nodes: list[str] = Field(default_factory=list)


class Buildkit(BaseModel):
    """A Buildkit declared resource."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = KIND
    metadata: ObjectMeta
    spec: BuildkitSpec = Field(default_factory=BuildkitSpec)
    status: BuildkitStatus = Field(default_factory=BuildkitStatus)

    @classmethod
    def from_manifest(cls, obj: dict[str, Any]) -> Buildkit:
        return cls.model_validate(obj)

    def to_manifest(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
