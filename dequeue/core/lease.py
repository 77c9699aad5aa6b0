"""
LeaseRenewer — async context manager that keeps a lease alive.

A worker holding an item for longer than the lease timeout wraps its work in
LeaseRenewer, which periodically calls lock_until() so the item does not
expire and get handed to another worker.

Usage
-----
    queue = DocumentQueue(storage)
    leased = await queue.pop(timeout=60)

    async with LeaseRenewer(queue, leased.id, duration=timedelta(seconds=60),
                            interval=timedelta(seconds=20)):
        result = await do_long_work(leased.body)

    await queue.complete(leased.id)

If the worker raises, the renewal task is cancelled and the lease simply
lapses after `duration`. Callers may unlock() in an except/finally block to
hand the item back sooner.

LeaseRenewer is typed against the structural Protocol _HasLockUntil, so any
object with a compatible lock_until coroutine works.
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import timedelta
from types import TracebackType
from typing import Protocol

from dequeue.domain.errors import StorageUnavailableError
from dequeue.log import get_logger

logger = get_logger(__name__)


class _HasLockUntil(Protocol):
    """Structural Protocol — any object with an async lock_until(item_id, duration) method."""

    async def lock_until(self, item_id: str, duration: timedelta) -> bool: ...


@dataclasses.dataclass
class LeaseRenewer:
    """
    Renews the lease on a single item.

    Parameters
    ----------
    queue    : any object with async lock_until(item_id, duration) -> bool
    item_id  : the leased item
    duration : lease length set on every renewal (default 5 minutes)
    interval : time between renewals (default 60 seconds); keep it below duration
    """

    queue: _HasLockUntil
    item_id: str
    duration: timedelta = timedelta(minutes=5)
    interval: timedelta = timedelta(seconds=60)

    _task: asyncio.Task[None] | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    async def __aenter__(self) -> LeaseRenewer:
        self._task = asyncio.create_task(
            self._renew(), name=f"dequeue-lease-{self.item_id}"
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _renew(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                found = await self.queue.lock_until(self.item_id, self.duration)
            except StorageUnavailableError as exc:
                # Transient; the current lease may still outlive the outage.
                logger.warning(
                    "lease_renewal_failed", item_id=self.item_id, error=str(exc)
                )
                continue
            if not found:
                # Item was purged.
                logger.debug("lease_renewal_stopped", item_id=self.item_id)
                return
