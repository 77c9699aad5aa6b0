"""
Exception hierarchy for dequeue.

DequeueError
├── StorageUnavailableError — backend failure (wraps original exception)
├── ItemNotFoundError       — item id not present in the collection
└── MalformedInputError     — invalid body or option, rejected before storage
"""

from __future__ import annotations


class DequeueError(Exception):
    """Base class for all dequeue exceptions."""


class StorageUnavailableError(DequeueError):
    """
    Wraps an underlying failure from a storage adapter.

    The failed operation applied no mutation; atomicity is guaranteed by the
    backend primitive. The engine never retries, callers decide.

    Attributes
    ----------
    cause : Exception
        The original exception from the storage backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class ItemNotFoundError(DequeueError):
    """
    Raised when an item id is not present in the collection.

    Only explicit lookups raise this. complete, unlock, lock_until and the
    priority calls treat a missing id as a no-op.
    """

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item {item_id!r} not found in queue")


class MalformedInputError(DequeueError):
    """Raised when push arguments or options have an invalid shape."""
