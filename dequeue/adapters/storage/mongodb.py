"""
MongoStorage — MongoDB adapter using motor and native find-and-modify.

Install extras: pip install "dequeue[mongo]"

Atomicity
---------
Every port method maps onto one MongoDB command, each atomic for a single
document:

  find_one_and_update → findAndModify (returnDocument=after)
  update_one          → update with upsert
  bulk_upsert         → ordered bulkWrite of UpdateOne(upsert=True)
  find / count        → find / countDocuments
  aggregate           → $match → $group → $sort pipeline
  delete_many / drop  → delete (drop keeps the collection and its indexes)

The query dialect is MongoDB's own, so filters and updates pass through
unchanged. Only ids are translated: callers see 24-char hex strings, the
server sees ObjectIds. Sort ties are broken by _id, i.e. insertion order.

The client must be created with tz_aware=True so datetimes compare with the
engine's UTC timestamps; from_url() does this.
"""
from __future__ import annotations

import contextlib
import dataclasses
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any

try:
    from bson import ObjectId
    from pymongo import ReturnDocument, UpdateOne
    from pymongo.errors import PyMongoError
except ImportError:
    raise ImportError(
        "MongoStorage requires motor. Install with: pip install 'dequeue[mongo]'"
    ) from None

from dequeue.config import QueueSettings
from dequeue.domain.errors import StorageUnavailableError
from dequeue.log import get_logger
from dequeue.ports.storage import Document, Filter, Sort, Update, UpsertOp

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection

logger = get_logger(__name__)


@dataclasses.dataclass
class MongoStorage:
    """
    MongoDB storage adapter.

    Parameters
    ----------
    collection : motor AsyncIOMotorCollection holding the queue documents
    """

    collection: AsyncIOMotorCollection

    @classmethod
    def from_url(cls, url: str, database: str, collection: str) -> "MongoStorage":
        """Connect lazily to `url` and use database.collection."""
        try:
            from motor.motor_asyncio import AsyncIOMotorClient
        except ImportError as exc:
            raise ImportError(
                "MongoStorage requires motor. Install with: pip install 'dequeue[mongo]'"
            ) from exc
        client = AsyncIOMotorClient(url, tz_aware=True)
        return cls(client[database][collection])

    @classmethod
    def from_settings(cls, settings: QueueSettings) -> "MongoStorage":
        return cls.from_url(
            settings.mongo_url, settings.mongo_database, settings.mongo_collection
        )

    async def ensure_indexes(self) -> None:
        """
        Create the indexes the queue relies on.

        The partial unique index on duplicate_key makes concurrent pushes of
        the same key converge on one incomplete record.
        """
        with _translate_errors("create_index"):
            await self.collection.create_index(
                [("duplicate_key", 1)],
                name="duplicate_key_live",
                unique=True,
                partialFilterExpression={"complete": False},
            )
            await self.collection.create_index(
                [("complete", 1), ("priority", -1), ("inserted_at", 1)],
                name="lease_order",
            )

    async def find_one_and_update(
        self,
        filter: Filter,
        update: Update,
        *,
        sort: Sort | None = None,
        upsert: bool = False,
    ) -> Document | None:
        with _translate_errors("find_one_and_update"):
            document = await self.collection.find_one_and_update(
                _to_mongo(filter),
                dict(update),
                sort=_with_tiebreak(sort),
                upsert=upsert,
                return_document=ReturnDocument.AFTER,
            )
        return _from_mongo(document)

    async def update_one(
        self,
        filter: Filter,
        update: Update,
        *,
        upsert: bool = False,
    ) -> bool:
        with _translate_errors("update_one"):
            result = await self.collection.update_one(
                _to_mongo(filter), dict(update), upsert=upsert
            )
        return result.matched_count > 0 or result.upserted_id is not None

    async def bulk_upsert(self, ops: Sequence[UpsertOp]) -> int:
        if not ops:
            return 0
        requests = [
            UpdateOne(_to_mongo(op.filter), dict(op.update), upsert=True) for op in ops
        ]
        with _translate_errors("bulk_write"):
            result = await self.collection.bulk_write(requests, ordered=True)
        return result.matched_count + result.upserted_count

    async def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        limit: int = 0,
    ) -> list[Document]:
        with _translate_errors("find"):
            cursor = self.collection.find(
                _to_mongo(filter), sort=_with_tiebreak(sort), limit=limit
            )
            documents = await cursor.to_list(length=None)
        return [_from_mongo(doc) for doc in documents]

    async def count(self, filter: Filter) -> int:
        with _translate_errors("count_documents"):
            return await self.collection.count_documents(_to_mongo(filter))

    async def aggregate(
        self,
        match: Filter,
        group_by: str | None,
        accumulators: Mapping[str, Mapping[str, Any]],
    ) -> list[Document]:
        pipeline: list[dict[str, Any]] = [
            {"$match": _to_mongo(match)},
            {
                "$group": {
                    "_id": f"${group_by}" if group_by is not None else None,
                    **{name: dict(spec) for name, spec in accumulators.items()},
                }
            },
            {"$sort": {"_id": 1}},
        ]
        with _translate_errors("aggregate"):
            cursor = self.collection.aggregate(pipeline)
            return await cursor.to_list(length=None)

    async def delete_many(self, filter: Filter) -> int:
        with _translate_errors("delete_many"):
            result = await self.collection.delete_many(_to_mongo(filter))
        return result.deleted_count

    async def drop(self) -> None:
        with _translate_errors("delete_many"):
            await self.collection.delete_many({})


@contextlib.contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise any PyMongoError as StorageUnavailableError."""
    try:
        yield
    except PyMongoError as exc:
        logger.error(
            "storage_operation_failed",
            backend="mongodb",
            operation=operation,
            error=str(exc),
        )
        raise StorageUnavailableError(f"MongoDB {operation} failed", exc) from exc


def _to_object_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _to_mongo(filter: Filter) -> dict[str, Any]:
    """Copy of filter with string _id values converted to ObjectId."""
    converted: dict[str, Any] = {}
    for key, condition in filter.items():
        if key in ("$or", "$and"):
            converted[key] = [_to_mongo(sub) for sub in condition]
        elif key == "_id":
            if isinstance(condition, Mapping):
                converted[key] = {
                    op: [_to_object_id(v) for v in arg] if op == "$in" else _to_object_id(arg)
                    for op, arg in condition.items()
                }
            else:
                converted[key] = _to_object_id(condition)
        else:
            converted[key] = condition
    return converted


def _from_mongo(document: dict[str, Any] | None) -> Document | None:
    if document is None:
        return None
    document["_id"] = str(document["_id"])
    return document


def _with_tiebreak(sort: Sort | None) -> list[tuple[str, int]] | None:
    if not sort:
        return None
    fields = list(sort)
    if all(name != "_id" for name, _ in fields):
        fields.append(("_id", 1))
    return fields
