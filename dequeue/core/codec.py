"""
Codec — serialize and deserialize stored documents to/from bytes using Pydantic v2.

Used by LocalFileSystemStorage. Every document is validated as a QueueItem,
so the wire format is exactly the QueueItem schema:
  - the storage id is written under "_id"
  - datetime fields are serialized as ISO-8601 strings with UTC offset
  - body is written as plain JSON

Wire format (produced by dump_json):
------------------------------------
{
  "items": [
    {
      "_id": "9f0c2d6e4b1a4c1e8e5f3a7b2d9c0e11",
      "body": {"task": "resize", "image": 42},
      "duplicate_key": "5d41402abc4b2a76b9719d911017c592",
      "priority": 3,
      "inserted_at": "2024-01-01T00:00:00Z",
      "count": 1,
      "locked": false,
      "locked_till": null,
      "complete": false,
      "completed_at": null,
      "completecount": 0
    }
  ]
}
"""
from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel

from dequeue.domain.models import QueueItem
from dequeue.ports.storage import Document


class _Snapshot(BaseModel):
    items: tuple[QueueItem, ...] = ()


def encode(documents: Iterable[Document]) -> bytes:
    """Serialize documents to UTF-8 JSON bytes."""
    snapshot = _Snapshot(items=tuple(QueueItem.from_document(d) for d in documents))
    return snapshot.model_dump_json(by_alias=True, indent=2).encode("utf-8")


def decode(data: bytes) -> list[Document]:
    """Deserialize UTF-8 JSON bytes to documents. Empty bytes → no documents."""
    if not data:
        return []
    snapshot = _Snapshot.model_validate_json(data)
    return [item.to_document() for item in snapshot.items]
