"""
Error taxonomy — every failure a reconciliation pass can surface.

The core never swallows these. A pass aborts on the first error and the
invoker (CLI or controller loop) decides what to do with it:

    NotFoundError      → benign for the declared resource, "create" for a child
    ConflictError      → optimistic-concurrency rejection, retryable
    AlreadyExistsError → create raced with another writer, retryable
    StoreError         → permission / transport / serialization, as-is
    CryptoFailure      → credential material could not be issued
    InvalidResourceError → the declared spec does not validate
"""

from __future__ import annotations


class CopsError(Exception):
    """Base class for all operator errors."""

    retryable: bool = False


class StoreError(CopsError):
    """The resource store rejected or failed an operation."""

    def __init__(self, message: str, *, kind: str = "", key: str = ""):
        super().__init__(message)
        self.kind = kind
        self.key = key


class NotFoundError(StoreError):
    """The requested object does not exist."""


class ConflictError(StoreError):
    """An update was based on a stale resourceVersion."""

    retryable = True


class AlreadyExistsError(StoreError):
    """A create targeted a name that is already taken."""

    retryable = True


class CryptoFailure(CopsError):
    """Key generation or certificate encoding failed."""


class InvalidResourceError(CopsError):
    """A declared resource's spec failed validation (e.g. max_replica < 1)."""
