"""
Domain models — Pydantic types for the declared resources.

All models are re-exported here for convenient access:

    from cops.core.models import Buildkit, Buildkite, NamespacedName
"""

from cops.core.models.buildkit import (
    Arch,
    Buildkit,
    BuildkitSpec,
    BuildkitStatus,
    CloudProvider,
)
from cops.core.models.buildkite import Buildkite, BuildkiteSpec, BuildkiteStatus
from cops.core.models.resource import (
    API_GROUP,
    API_VERSION,
    NamespacedName,
    ObjectMeta,
    ResourceRequirements,
)

__all__ = [
    "API_GROUP",
    "API_VERSION",
    # buildkit.py
    "Arch",
    "Buildkit",
    "BuildkitSpec",
    "BuildkitStatus",
    "CloudProvider",
    # buildkite.py
    "Buildkite",
    "BuildkiteSpec",
    "BuildkiteStatus",
    # resource.py
    "NamespacedName",
    "ObjectMeta",
    "ResourceRequirements",
]
