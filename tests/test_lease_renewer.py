import asyncio
from datetime import timedelta

import pytest

from dequeue.core.lease import LeaseRenewer
from dequeue.core.queue import DocumentQueue
from dequeue.domain.errors import StorageUnavailableError

# ---------------------------------------------------------------------------
# Minimal queue stub
# ---------------------------------------------------------------------------


class _MockQueue:
    def __init__(
        self, found: bool = True, side_effect: Exception | None = None
    ) -> None:
        self.calls: list[tuple[str, timedelta]] = []
        self._found = found
        self._side_effect = side_effect

    async def lock_until(self, item_id: str, duration: timedelta) -> bool:
        self.calls.append((item_id, duration))
        if self._side_effect is not None:
            raise self._side_effect
        return self._found


# ---------------------------------------------------------------------------
# Basic operation
# ---------------------------------------------------------------------------


async def test_renews_at_interval() -> None:
    queue = _MockQueue()
    async with LeaseRenewer(
        queue=queue, item_id="item-1", interval=timedelta(milliseconds=10)
    ):
        await asyncio.sleep(0.08)

    assert len(queue.calls) >= 3


async def test_renews_correct_item_with_duration() -> None:
    queue = _MockQueue()
    async with LeaseRenewer(
        queue=queue,
        item_id="specific-item",
        duration=timedelta(seconds=30),
        interval=timedelta(milliseconds=10),
    ):
        await asyncio.sleep(0.05)

    assert queue.calls
    assert all(call == ("specific-item", timedelta(seconds=30)) for call in queue.calls)


async def test_no_renewal_after_context_exit() -> None:
    queue = _MockQueue()
    async with LeaseRenewer(
        queue=queue, item_id="item-1", interval=timedelta(milliseconds=10)
    ):
        await asyncio.sleep(0.04)

    calls_at_exit = len(queue.calls)
    await asyncio.sleep(0.04)
    assert len(queue.calls) == calls_at_exit


# ---------------------------------------------------------------------------
# Task lifecycle
# ---------------------------------------------------------------------------


async def test_task_is_running_inside_context() -> None:
    renewer = LeaseRenewer(queue=_MockQueue(), item_id="i", interval=timedelta(seconds=100))
    async with renewer:
        assert renewer._task is not None
        assert not renewer._task.done()


async def test_task_is_none_after_exit() -> None:
    renewer = LeaseRenewer(queue=_MockQueue(), item_id="i", interval=timedelta(seconds=100))
    async with renewer:
        pass
    assert renewer._task is None


async def test_exception_in_body_still_cancels_task() -> None:
    renewer = LeaseRenewer(queue=_MockQueue(), item_id="i", interval=timedelta(seconds=100))
    with pytest.raises(ValueError):
        async with renewer:
            raise ValueError("worker error")
    assert renewer._task is None


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


async def test_missing_item_stops_renewal() -> None:
    queue = _MockQueue(found=False)
    renewer = LeaseRenewer(
        queue=queue, item_id="gone", interval=timedelta(milliseconds=5)
    )
    async with renewer:
        await asyncio.sleep(0.05)
        assert renewer._task is not None
        assert renewer._task.done()

    assert len(queue.calls) == 1


async def test_storage_outage_keeps_renewing() -> None:
    queue = _MockQueue(side_effect=StorageUnavailableError("down", OSError("io")))
    async with LeaseRenewer(
        queue=queue, item_id="item-1", interval=timedelta(milliseconds=5)
    ):
        await asyncio.sleep(0.05)

    assert len(queue.calls) >= 2


async def test_unexpected_error_propagates_through_exit() -> None:
    queue = _MockQueue(side_effect=RuntimeError("unexpected"))
    renewer = LeaseRenewer(
        queue=queue, item_id="item-1", interval=timedelta(milliseconds=5)
    )
    with pytest.raises(RuntimeError, match="unexpected"):
        async with renewer:
            await asyncio.sleep(0.03)


# ---------------------------------------------------------------------------
# Defaults and integration
# ---------------------------------------------------------------------------


def test_defaults() -> None:
    renewer = LeaseRenewer(queue=_MockQueue(), item_id="i")
    assert renewer.interval == timedelta(seconds=60)
    assert renewer.duration == timedelta(minutes=5)


async def test_keeps_real_lease_alive(queue: DocumentQueue, clock) -> None:
    await queue.push("long job")
    leased = await queue.pop(timeout=1)
    async with LeaseRenewer(
        queue=queue,
        item_id=leased.id,
        duration=timedelta(minutes=10),
        interval=timedelta(milliseconds=5),
    ):
        await asyncio.sleep(0.03)

    clock.advance(120)
    assert await queue.pop() is None
    stored = await queue.item(leased.id)
    assert stored.locked_till is not None
    assert stored.locked_till > clock.now
