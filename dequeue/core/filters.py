"""
Filter and update builders shared by the queue, batch and stats engines.

Every function is pure: it takes the instant `now` (and the lease mode) and
returns a document in the storage dialect. Keeping them in one place is what
guarantees pop, peek and stats agree on what "eligible" and "locked" mean.

Lease modes
-----------
lease_expiry=True   leases carry locked_till and lapse on their own; a lease
                    taken without a timeout (locked_till=None) never lapses
lease_expiry=False  leases have no expiry; only unlock/complete release them
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from dequeue.domain.models import PushRequest
from dequeue.ports.storage import Filter, Sort, Update

# Highest priority first, then FIFO within a priority band.
LEASE_ORDER: Sort = (("priority", -1), ("inserted_at", 1))


def eligible(now: datetime, lease_expiry: bool = True) -> Filter:
    """Incomplete items that pop may lease at `now`."""
    if not lease_expiry:
        return {"complete": False, "locked": False}
    return {
        "complete": False,
        "$or": [{"locked": False}, {"locked_till": {"$lt": now}}],
    }


def leased(now: datetime, lease_expiry: bool = True) -> Filter:
    """Incomplete items holding a live lease at `now`; the complement of eligible()."""
    if not lease_expiry:
        return {"complete": False, "locked": True}
    return {
        "complete": False,
        "locked": True,
        "$or": [{"locked_till": None}, {"locked_till": {"$gte": now}}],
    }


def by_id(item_id: str) -> Filter:
    return {"_id": item_id}


def live_duplicate(duplicate_key: str) -> Filter:
    """The single incomplete record a push with this key merges into."""
    return {"duplicate_key": duplicate_key, "complete": False}


def merge_update(
    request: PushRequest,
    now: datetime,
    default_priority: int,
) -> Update:
    """
    Upsert document for a push.

    A merge overwrites body, drops any lease and bumps count. An explicit
    priority always wins; without one the merged record keeps its priority
    and a new record starts at default_priority.
    """
    on_set: dict[str, Any] = {
        "body": request.body,
        "locked": False,
        "locked_till": None,
    }
    on_insert: dict[str, Any] = {
        "inserted_at": now,
        "completed_at": None,
        "completecount": 0,
    }
    if request.priority is not None:
        on_set["priority"] = request.priority
    else:
        on_insert["priority"] = default_priority
    return {"$set": on_set, "$setOnInsert": on_insert, "$inc": {"count": 1}}


def lease_update(locked_till: datetime | None) -> Update:
    return {"$set": {"locked": True, "locked_till": locked_till}}


def release_update() -> Update:
    return {"$set": {"locked": False, "locked_till": None}}


def complete_update(now: datetime) -> Update:
    return {
        "$set": {"complete": True, "completed_at": now},
        "$inc": {"completecount": 1},
    }
