"""
DocumentQueue — one atomic storage operation per call.

Every push, pop, unlock, lock_until, complete and priority change is a single
atomic document operation against the storage port. There is no client-side
locking, no retry loop and no coordinator: mutual exclusion between workers
comes entirely from find_one_and_update selecting and leasing an item in one
step.

Lifecycle of an item
--------------------
  push ──> Available ──pop──> Leased ──complete──> Completed ──cleanup──> gone
               ^                 │
               └─unlock / expiry─┘

Pushing a body whose duplicate key matches an incomplete item merges into
that item (count += 1) instead of inserting a new one, and drops its lease.

Lease timeouts
--------------
pop(timeout=...) takes seconds or a timedelta; without it the configured
QueueSettings.timeout applies. timeout=None disables expiry: the lease then
only ends through unlock() or complete(), and an item whose worker dies stays
Leased forever. Use LeaseRenewer to keep a timed lease alive during long work.
"""
from __future__ import annotations

import dataclasses
import enum
import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from dequeue.config import QueueSettings
from dequeue.core import filters
from dequeue.core.batch import PushBuffer
from dequeue.core.stats import collect_stats
from dequeue.domain.errors import (
    ItemNotFoundError,
    MalformedInputError,
    StorageUnavailableError,
)
from dequeue.domain.fingerprint import (
    Fingerprinter,
    canonical_fingerprint,
    canonical_json,
)
from dequeue.domain.models import LeasedItem, PushRequest, QueueItem, QueueStats
from dequeue.log import get_logger
from dequeue.ports.storage import DocumentStoragePort

Duration = int | float | timedelta

logger = get_logger(__name__)


class _Unset(enum.Enum):
    TOKEN = 0


_UNSET = _Unset.TOKEN


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclasses.dataclass
class DocumentQueue:
    """
    Priority work queue over a DocumentStoragePort.

    Parameters
    ----------
    storage     : any DocumentStoragePort implementation
    settings    : timeout, default priority and peek limit for this instance
    fingerprint : derives duplicate keys from bodies (default: canonical JSON md5)
    clock       : returns the current UTC time; replaceable in tests

    All methods are async and safe to call from multiple coroutines. The
    batch buffer (batchpush / batchprocess) is the only in-process state and
    belongs to a single producer.
    """

    storage: DocumentStoragePort
    settings: QueueSettings = dataclasses.field(default_factory=QueueSettings)
    fingerprint: Fingerprinter = canonical_fingerprint
    clock: Callable[[], datetime] = _utcnow

    _buffer: PushBuffer = dataclasses.field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._buffer = PushBuffer(
            fingerprint=self.fingerprint,
            default_priority=self.settings.default_priority,
        )

    # ------------------------------------------------------------------ #
    # Producers                                                            #
    # ------------------------------------------------------------------ #

    async def push(
        self,
        body: Any,
        *,
        priority: int | None = None,
        duplicate_key: str | None = None,
    ) -> QueueItem:
        """
        Insert body, or merge it into the incomplete item with the same duplicate key.

        Returns the stored item after the merge; its count says how many
        pushes it absorbed. Raises MalformedInputError before touching
        storage if the body or options are invalid.
        """
        request = _request(body, priority, duplicate_key)
        key = request.duplicate_key or self.fingerprint(request.body)
        document = await self.storage.find_one_and_update(
            filters.live_duplicate(key),
            filters.merge_update(request, self.clock(), self.settings.default_priority),
            upsert=True,
        )
        if document is None:
            raise StorageUnavailableError(
                "push upsert returned no document", RuntimeError(key)
            )
        item = QueueItem.from_document(document)
        logger.debug(
            "item_pushed", item_id=item.id, duplicate_key=key, count=item.count
        )
        return item

    def batchpush(
        self,
        body: Any,
        *,
        priority: int | None = None,
        duplicate_key: str | None = None,
    ) -> None:
        """Buffer a push for the next batchprocess(). Never touches storage."""
        self._buffer.append(_request(body, priority, duplicate_key))

    @property
    def batch(self) -> tuple[PushRequest, ...]:
        """Requests waiting for batchprocess()."""
        return self._buffer.pending

    async def batchprocess(self) -> int:
        """
        Apply every buffered push as one bulk upsert pass.

        Returns the number of entries applied. The buffer is cleared even
        when storage fails; the error propagates.
        """
        applied = await self._buffer.flush(self.storage, self.clock())
        if applied:
            logger.info("batch_processed", items=applied)
        return applied

    # ------------------------------------------------------------------ #
    # Consumers                                                            #
    # ------------------------------------------------------------------ #

    async def pop(
        self,
        *,
        timeout: Duration | None | _Unset = _UNSET,
    ) -> LeasedItem | None:
        """
        Lease the highest-priority, earliest-inserted available item.

        Returns None when nothing is available. The lease lasts `timeout`
        (seconds or timedelta), or forever when timeout is None.
        """
        lease = self._lease_duration(timeout)
        now = self.clock()
        locked_till = _lease_end(now, lease) if lease is not None else None
        document = await self.storage.find_one_and_update(
            filters.eligible(now, lease_expiry=lease is not None),
            filters.lease_update(locked_till),
            sort=filters.LEASE_ORDER,
        )
        if document is None:
            return None
        logger.debug("item_leased", item_id=document["_id"], locked_till=locked_till)
        return LeasedItem(
            id=document["_id"], body=document.get("body"), locked_till=locked_till
        )

    async def peek(
        self,
        *,
        timeout: Duration | None | _Unset = _UNSET,
    ) -> list[QueueItem]:
        """The next available items in pop order, without leasing them."""
        lease = self._lease_duration(timeout)
        documents = await self.storage.find(
            filters.eligible(self.clock(), lease_expiry=lease is not None),
            sort=filters.LEASE_ORDER,
            limit=self.settings.peek_limit,
        )
        return [QueueItem.from_document(d) for d in documents]

    async def unlock(self, item_id: str) -> bool:
        """Release a lease early. Returns False if the item does not exist."""
        found = await self.storage.update_one(
            filters.by_id(item_id), filters.release_update()
        )
        logger.debug("item_unlocked", item_id=item_id, found=found)
        return found

    async def lock_until(self, item_id: str, duration: Duration) -> bool:
        """Extend (or take) the lease to now + duration. Returns False if the item does not exist."""
        locked_till = _lease_end(self.clock(), _as_duration(duration))
        found = await self.storage.update_one(
            filters.by_id(item_id), filters.lease_update(locked_till)
        )
        logger.debug(
            "lease_extended", item_id=item_id, locked_till=locked_till, found=found
        )
        return found

    async def complete(self, item_id: str) -> bool:
        """
        Mark an item done.

        Repeated calls keep the item complete and keep incrementing
        completecount, which stats() reports as redundant completions.
        Returns False if the item does not exist.
        """
        document = await self.storage.find_one_and_update(
            filters.by_id(item_id), filters.complete_update(self.clock())
        )
        if document is None:
            logger.debug("complete_ignored", item_id=item_id)
            return False
        item = QueueItem.from_document(document)
        if item.completecount > 1:
            logger.warning(
                "redundant_completion",
                item_id=item.id,
                completecount=item.completecount,
            )
        else:
            logger.debug("item_completed", item_id=item.id)
        return True

    # ------------------------------------------------------------------ #
    # Priority                                                             #
    # ------------------------------------------------------------------ #

    async def change_item_priority(self, item_id: str, value: int) -> bool:
        _require_int("priority", value)
        return await self.storage.update_one(
            filters.by_id(item_id), {"$set": {"priority": value}}
        )

    async def increase_item_priority(self, item_id: str, step: int = 1) -> bool:
        _require_int("step", step)
        return await self.storage.update_one(
            filters.by_id(item_id), {"$inc": {"priority": step}}
        )

    async def decrease_item_priority(self, item_id: str, step: int = 1) -> bool:
        _require_int("step", step)
        return await self.storage.update_one(
            filters.by_id(item_id), {"$inc": {"priority": -step}}
        )

    # ------------------------------------------------------------------ #
    # Inspection & maintenance                                             #
    # ------------------------------------------------------------------ #

    async def item(self, item_id: str) -> QueueItem:
        """Fetch one item. Raises ItemNotFoundError if absent."""
        documents = await self.storage.find(filters.by_id(item_id), limit=1)
        if not documents:
            raise ItemNotFoundError(item_id)
        return QueueItem.from_document(documents[0])

    async def stats(self) -> QueueStats:
        """Aggregate counts under this queue's lease mode."""
        return await collect_stats(
            self.storage,
            self.clock(),
            lease_expiry=self.settings.timeout is not None,
        )

    async def cleanup(self) -> int:
        """Delete completed items. Returns the number deleted."""
        removed = await self.storage.delete_many({"complete": True})
        logger.info("queue_cleaned", removed=removed)
        return removed

    async def flush(self) -> None:
        """Delete every item. Use with caution!"""
        await self.storage.drop()
        logger.info("queue_flushed")

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _lease_duration(self, timeout: Duration | None | _Unset) -> timedelta | None:
        if timeout is _UNSET:
            timeout = self.settings.timeout
        if timeout is None:
            return None
        return _as_duration(timeout)


def _request(body: Any, priority: Any, duplicate_key: Any) -> PushRequest:
    """Validate push arguments; raise MalformedInputError on any problem."""
    try:
        request = PushRequest(
            body=body, priority=priority, duplicate_key=duplicate_key
        )
    except ValidationError as exc:
        raise MalformedInputError(f"invalid push: {exc}") from exc
    canonical_json(request.body)
    return request


def _as_duration(value: Any) -> timedelta:
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            if not math.isfinite(value):
                raise MalformedInputError(f"duration must be finite, got {value}")
            duration = timedelta(seconds=value)
        except OverflowError as exc:
            raise MalformedInputError(f"duration out of range: {value}") from exc
    else:
        raise MalformedInputError(
            f"duration must be seconds or a timedelta, got {type(value).__name__}"
        )
    if duration <= timedelta(0):
        raise MalformedInputError(f"duration must be positive, got {duration}")
    return duration


def _lease_end(now: datetime, duration: timedelta) -> datetime:
    try:
        return now + duration
    except OverflowError as exc:
        raise MalformedInputError(f"lease end out of range: {duration}") from exc


def _require_int(name: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise MalformedInputError(
            f"{name} must be an int, got {type(value).__name__}"
        )
