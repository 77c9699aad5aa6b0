"""
Domain models for dequeue — backed by Pydantic v2.

Pydantic handles:
  - validation of push requests before any storage call
  - document ↔ model conversion (the storage id lives under "_id")
  - datetime parsing (ISO-8601 with timezone) for the file codec

All models are frozen (immutable). The engine never mutates an item in
memory; every change is an atomic update against storage, and the stored
document is read back as a fresh QueueItem.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
)

Body = StrictStr | StrictInt | StrictFloat | dict[str, Any] | list[Any]


class PushRequest(BaseModel):
    """
    A validated push, as buffered by batchpush or applied by push.

    body          — str, int, float, mapping or list (bool and None rejected)
    priority      — explicit priority, or None to keep/default it
    duplicate_key — explicit merge key, or None to derive it from body
    """

    model_config = ConfigDict(frozen=True)

    body: Body
    priority: StrictInt | None = None
    duplicate_key: StrictStr | None = Field(default=None, min_length=1)


class QueueItem(BaseModel):
    """
    One persisted record per logical work unit.

    id            — opaque storage id (stored as "_id")
    body          — caller payload, never interpreted by the engine
    duplicate_key — natural key for merge-on-insert
    priority      — higher value = served first
    inserted_at   — first insert of this duplicate group; anchors FIFO order
    count         — pushes merged into this record
    locked        — True while a lease is held
    locked_till   — lease expiry, None when unleased or leased without timeout
    complete      — True once completed at least once
    completed_at  — most recent completion
    completecount — completion calls, including redundant ones
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    body: Any = None
    duplicate_key: str
    priority: int
    inserted_at: datetime
    count: int = 1
    locked: bool = False
    locked_till: datetime | None = None
    complete: bool = False
    completed_at: datetime | None = None
    completecount: int = 0

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "QueueItem":
        """Build an item from a raw storage document."""
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        """Raw storage document (python mode, datetimes preserved)."""
        return self.model_dump(by_alias=True)

    def has_live_lease(self, now: datetime) -> bool:
        """True if a lease is held and has not expired at `now`."""
        if not self.locked:
            return False
        return self.locked_till is None or self.locked_till >= now

    def is_available(self, now: datetime, lease_expiry: bool = True) -> bool:
        """
        Eligibility for pop/peek.

        With lease_expiry, an item is available when unlocked or when its
        lease expiry is in the past; a lease without expiry never lapses.
        Without lease_expiry, only unlocked items are available.
        """
        if self.complete:
            return False
        if not lease_expiry:
            return not self.locked
        if not self.locked:
            return True
        return self.locked_till is not None and self.locked_till < now

    @property
    def redundant_completions(self) -> int:
        """Completion calls beyond the first."""
        return max(self.completecount - 1, 0)


class LeasedItem(BaseModel):
    """What pop hands to a worker: the item id, its body and lease expiry."""

    model_config = ConfigDict(frozen=True)

    id: str
    body: Any
    locked_till: datetime | None = None


class GroupCount(BaseModel):
    """Completed and waiting item counts for one stats group."""

    model_config = ConfigDict(frozen=True)

    key: Any
    complete: int = 0
    waiting: int = 0


class QueueStats(BaseModel):
    """
    Aggregate snapshot computed from a single point in time.

    available           — items eligible for pop
    locked              — incomplete items holding a live lease
    complete            — completed items
    total               — all items
    redundant_completes — sum of (completecount - 1) over completed items
    priority            — per-priority breakdown
    tasks               — per body["task"] breakdown (None when absent)
    """

    model_config = ConfigDict(frozen=True)

    available: int = 0
    locked: int = 0
    complete: int = 0
    total: int = 0
    redundant_completes: int = 0
    priority: tuple[GroupCount, ...] = ()
    tasks: tuple[GroupCount, ...] = ()
