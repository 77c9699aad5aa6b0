"""
dequeue — persistent priority work queue with leases and deduplication.

Items live as documents in a storage backend. Producers push bodies;
identical bodies (or bodies sharing an explicit duplicate key) merge into one
incomplete item. Consumers pop the highest-priority, earliest-inserted
available item, which atomically leases it until a timeout, then complete or
unlock it. A lease that times out makes the item available again, giving
at-least-once delivery; duplicate acknowledgements are counted, not refused.

Every operation is a single atomic document operation against the backend —
there is no coordinator process and no client-side locking.

Quick start
-----------
    import asyncio
    from dequeue import DocumentQueue, InMemoryStorage, LeaseRenewer

    async def main():
        queue = DocumentQueue(InMemoryStorage())

        # Enqueue work (a second identical push merges into the first)
        await queue.push({"task": "send_email", "to": "user@example.com"}, priority=5)

        # Lease, process, acknowledge
        leased = await queue.pop(timeout=60)
        async with LeaseRenewer(queue, leased.id):
            print(f"Processing item {leased.id}")
        await queue.complete(leased.id)

        print(await queue.stats())

    asyncio.run(main())

Storage adapters
----------------
Built-in adapters (no extra deps):
  - InMemoryStorage           — for tests and examples
  - LocalFileSystemStorage    — POSIX single-machine (fcntl.flock)

Optional adapters (install extras):
  - MongoStorage     (pip install "dequeue[mongo]")

Custom adapters implement the DocumentStoragePort Protocol: an atomic
find_one_and_update plus update/bulk-upsert/find/count/aggregate/delete.

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (QueueItem, QueueStats), errors, fingerprints
  ports/    — Protocol interfaces (DocumentStoragePort)
  core/     — business logic (DocumentQueue, PushBuffer, stats, LeaseRenewer)
  adapters/ — concrete storage implementations
"""
from __future__ import annotations

from dequeue.adapters.storage.filesystem import LocalFileSystemStorage
from dequeue.adapters.storage.memory import InMemoryStorage
from dequeue.config import QueueSettings, get_settings
from dequeue.core.lease import LeaseRenewer
from dequeue.core.queue import DocumentQueue
from dequeue.domain.errors import (
    DequeueError,
    ItemNotFoundError,
    MalformedInputError,
    StorageUnavailableError,
)
from dequeue.domain.fingerprint import canonical_fingerprint
from dequeue.domain.models import (
    GroupCount,
    LeasedItem,
    PushRequest,
    QueueItem,
    QueueStats,
)
from dequeue.log import configure_logging
from dequeue.ports.storage import DocumentStoragePort, UpsertOp

__all__ = [
    # Domain models
    "QueueItem",
    "LeasedItem",
    "PushRequest",
    "QueueStats",
    "GroupCount",
    # Errors
    "DequeueError",
    "StorageUnavailableError",
    "ItemNotFoundError",
    "MalformedInputError",
    # Port (for typing custom adapters)
    "DocumentStoragePort",
    "UpsertOp",
    # High-level queue API
    "DocumentQueue",
    "LeaseRenewer",
    "canonical_fingerprint",
    # Configuration & logging
    "QueueSettings",
    "get_settings",
    "configure_logging",
    # Built-in storage adapters
    "InMemoryStorage",
    "LocalFileSystemStorage",
]
