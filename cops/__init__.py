"""cops — build-infrastructure cluster operator."""

__version__ = "0.1.0"
