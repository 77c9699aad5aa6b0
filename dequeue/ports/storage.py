"""
DocumentStoragePort — the single port in dequeue.

Any object satisfying this structural Protocol can act as the storage backend.
No base class or registration is required — Python's structural subtyping
(duck typing + Protocol) is sufficient.

Atomicity contract
------------------
Every method is one atomic operation against the backend. In particular
find_one_and_update selects, mutates and returns a single document with no
intervening observation by another caller; the queue's mutual-exclusion
guarantee for leases rests entirely on it.

Query dialect
-------------
Filters, updates and sorts are a subset of the MongoDB dialect, so the
MongoDB adapter passes them through unchanged and the local adapters
evaluate them with dequeue.adapters.storage.query:

  filter       {"a.b": value}             equality; None matches missing or null
               {"f": {"$lt" | "$lte" | "$gt" | "$gte" | "$ne" | "$in": v}}
               {"$or": [...]}, {"$and": [...]}
  update       {"$set": {...}, "$inc": {...}, "$setOnInsert": {...}}
  sort         [("field", 1 | -1), ...]; ties keep insertion order
  accumulator  {"$sum": 1} | {"$sum": "$field"}
               | {"$sum": {"$cond": ["$field", if_true, if_false]}}

Documents carry their storage id under "_id", always as a str.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

Document = dict[str, Any]
Filter = Mapping[str, Any]
Update = Mapping[str, Mapping[str, Any]]
Sort = Sequence[tuple[str, int]]


@dataclasses.dataclass(frozen=True)
class UpsertOp:
    """One entry of a bulk upsert: update the document matching filter, or insert it."""

    filter: Filter
    update: Update


@runtime_checkable
class DocumentStoragePort(Protocol):
    """
    Minimal interface required by dequeue core.

    Implementing adapters (built-in):
      - InMemoryStorage        — asyncio.Lock-guarded dict, for tests
      - LocalFileSystemStorage — fcntl.flock-guarded JSON file, POSIX single-machine
      - MongoStorage           — native find-and-modify (motor)
    """

    async def find_one_and_update(
        self,
        filter: Filter,
        update: Update,
        *,
        sort: Sort | None = None,
        upsert: bool = False,
    ) -> Document | None:
        """
        Atomically update the first document matching filter (in sort order).

        Returns the document as it is after the update, the inserted document
        when upsert created one, or None when nothing matched.
        """
        ...

    async def update_one(
        self,
        filter: Filter,
        update: Update,
        *,
        upsert: bool = False,
    ) -> bool:
        """Atomically update one matching document. Returns True if one matched or was inserted."""
        ...

    async def bulk_upsert(self, ops: Sequence[UpsertOp]) -> int:
        """
        Apply ops in order, each as an individually atomic upsert.

        Best effort: a failure part way raises StorageUnavailableError and
        leaves earlier ops applied. Returns the number of ops applied.
        """
        ...

    async def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        limit: int = 0,
    ) -> list[Document]:
        """Matching documents in sort order; limit=0 means no limit."""
        ...

    async def count(self, filter: Filter) -> int:
        """Number of matching documents."""
        ...

    async def aggregate(
        self,
        match: Filter,
        group_by: str | None,
        accumulators: Mapping[str, Mapping[str, Any]],
    ) -> list[Document]:
        """
        Group matching documents by the value at group_by (None: one group).

        Returns one document per group: {"_id": group value, <name>: total, ...},
        ordered by group value ascending with None first.
        """
        ...

    async def delete_many(self, filter: Filter) -> int:
        """Delete matching documents. Returns the number deleted."""
        ...

    async def drop(self) -> None:
        """Delete every document."""
        ...
