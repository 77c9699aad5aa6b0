"""
InMemoryStorage — asyncio.Lock-guarded document map for testing and development.

Stores documents in a DocumentCollection and serializes every operation with
an asyncio.Lock, so each call is atomic with respect to every other call,
faithfully simulating the single-document atomicity of a real backend.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any

from dequeue.adapters.storage.collection import DocumentCollection
from dequeue.ports.storage import Document, Filter, Sort, Update, UpsertOp


@dataclasses.dataclass
class InMemoryStorage:
    """
    In-process document storage.

    Parameters
    ----------
    initial_documents : optional pre-populated documents (useful for test setup)
    """

    initial_documents: Sequence[Document] = ()

    def __post_init__(self) -> None:
        self._collection = DocumentCollection.from_documents(self.initial_documents)
        self._lock: asyncio.Lock = asyncio.Lock()

    async def find_one_and_update(
        self,
        filter: Filter,
        update: Update,
        *,
        sort: Sort | None = None,
        upsert: bool = False,
    ) -> Document | None:
        async with self._lock:
            return self._collection.find_one_and_update(
                filter, update, sort=sort, upsert=upsert
            )

    async def update_one(
        self,
        filter: Filter,
        update: Update,
        *,
        upsert: bool = False,
    ) -> bool:
        async with self._lock:
            return self._collection.update_one(filter, update, upsert=upsert)

    async def bulk_upsert(self, ops: Sequence[UpsertOp]) -> int:
        async with self._lock:
            return self._collection.bulk_upsert(ops)

    async def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        limit: int = 0,
    ) -> list[Document]:
        async with self._lock:
            return self._collection.find(filter, sort=sort, limit=limit)

    async def count(self, filter: Filter) -> int:
        async with self._lock:
            return self._collection.count(filter)

    async def aggregate(
        self,
        match: Filter,
        group_by: str | None,
        accumulators: Mapping[str, Mapping[str, Any]],
    ) -> list[Document]:
        async with self._lock:
            return self._collection.aggregate(match, group_by, accumulators)

    async def delete_many(self, filter: Filter) -> int:
        async with self._lock:
            return self._collection.delete_many(filter)

    async def drop(self) -> None:
        async with self._lock:
            self._collection.clear()
