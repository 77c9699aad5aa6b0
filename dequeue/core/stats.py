"""
Stats engine — aggregate counts over the item collection.

All queries are built from one `now` and issued together with
asyncio.gather, so the counts describe one instant as closely as the
backend allows. Nothing here writes to storage.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from dequeue.core import filters
from dequeue.domain.models import GroupCount, QueueStats
from dequeue.ports.storage import Document, DocumentStoragePort

_COMPLETION_TOTALS = {
    "completions": {"$sum": "$completecount"},
    "items": {"$sum": 1},
}

_GROUP_TOTALS = {
    "complete": {"$sum": {"$cond": ["$complete", 1, 0]}},
    "waiting": {"$sum": {"$cond": ["$complete", 0, 1]}},
}


async def collect_stats(
    storage: DocumentStoragePort,
    now: datetime,
    lease_expiry: bool = True,
) -> QueueStats:
    """Compute a QueueStats snapshot for the given lease mode."""
    (
        available,
        locked,
        complete,
        total,
        completions,
        by_priority,
        by_task,
    ) = await asyncio.gather(
        storage.count(filters.eligible(now, lease_expiry)),
        storage.count(filters.leased(now, lease_expiry)),
        storage.count({"complete": True}),
        storage.count({}),
        storage.aggregate({"complete": True}, None, _COMPLETION_TOTALS),
        storage.aggregate({}, "priority", _GROUP_TOTALS),
        storage.aggregate({}, "body.task", _GROUP_TOTALS),
    )
    return QueueStats(
        available=available,
        locked=locked,
        complete=complete,
        total=total,
        redundant_completes=_redundant(completions),
        priority=_groups(by_priority),
        tasks=_groups(by_task),
    )


def _redundant(rows: list[Document]) -> int:
    if not rows:
        return 0
    row = rows[0]
    return int(row["completions"]) - int(row["items"])


def _groups(rows: list[Document]) -> tuple[GroupCount, ...]:
    return tuple(
        GroupCount(
            key=row["_id"],
            complete=int(row["complete"]),
            waiting=int(row["waiting"]),
        )
        for row in rows
    )