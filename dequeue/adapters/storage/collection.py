"""
DocumentCollection — synchronous, unguarded document set for local adapters.

Implements the DocumentStoragePort semantics over a dict of documents keyed
by "_id". It performs no locking of its own: InMemoryStorage wraps it in an
asyncio.Lock and LocalFileSystemStorage in an fcntl.flock, which is what
makes each call atomic.

Documents are kept in insertion order, which is the natural order used to
break sort ties. Returned documents are deep copies.
"""

from __future__ import annotations

import copy
import dataclasses
import uuid
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from dequeue.adapters.storage import query
from dequeue.ports.storage import Document, Filter, Sort, Update, UpsertOp


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclasses.dataclass
class DocumentCollection:
    documents: dict[str, Document] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_documents(cls, documents: Iterable[Document]) -> "DocumentCollection":
        collection = cls()
        for document in documents:
            document = copy.deepcopy(document)
            document.setdefault("_id", _new_id())
            collection.documents[str(document["_id"])] = document
        return collection

    # ------------------------------------------------------------------ #
    # Mutations                                                            #
    # ------------------------------------------------------------------ #

    def find_one_and_update(
        self,
        filter: Filter,
        update: Update,
        *,
        sort: Sort | None = None,
        upsert: bool = False,
    ) -> Document | None:
        selected = self._select(filter, sort)
        if selected:
            target = selected[0]
            query.apply_update(target, update, inserting=False)
        elif upsert:
            target = self._insert(filter, update)
        else:
            return None
        return copy.deepcopy(target)

    def update_one(self, filter: Filter, update: Update, *, upsert: bool = False) -> bool:
        return self.find_one_and_update(filter, update, upsert=upsert) is not None

    def bulk_upsert(self, ops: Sequence[UpsertOp]) -> int:
        for op in ops:
            self.find_one_and_update(op.filter, op.update, upsert=True)
        return len(ops)

    def delete_many(self, filter: Filter) -> int:
        doomed = [key for key, doc in self.documents.items() if query.matches(doc, filter)]
        for key in doomed:
            del self.documents[key]
        return len(doomed)

    def clear(self) -> None:
        self.documents.clear()

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        limit: int = 0,
    ) -> list[Document]:
        selected = self._select(filter, sort)
        if limit > 0:
            selected = selected[:limit]
        return copy.deepcopy(selected)

    def count(self, filter: Filter) -> int:
        return sum(1 for doc in self.documents.values() if query.matches(doc, filter))

    def aggregate(
        self,
        match: Filter,
        group_by: str | None,
        accumulators: Mapping[str, Mapping[str, Any]],
    ) -> list[Document]:
        matched = (doc for doc in self.documents.values() if query.matches(doc, match))
        return query.accumulate(matched, group_by, accumulators)

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _select(self, filter: Filter, sort: Sort | None) -> list[Document]:
        selected = [doc for doc in self.documents.values() if query.matches(doc, filter)]
        if sort:
            selected = query.sort_documents(selected, sort)
        return selected

    def _insert(self, filter: Filter, update: Update) -> Document:
        document = query.seed_from_filter(filter)
        query.apply_update(document, update, inserting=True)
        document.setdefault("_id", _new_id())
        document["_id"] = str(document["_id"])
        self.documents[document["_id"]] = document
        return document
