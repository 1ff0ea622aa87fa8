"""Resource stores — where declared resources and their children live."""

from cops.adapters.store.base import ResourceStore
from cops.adapters.store.kubectl import KubectlStore
from cops.adapters.store.memory import MemoryStore

__all__ = ["KubectlStore", "MemoryStore", "ResourceStore"]
