"""
PushBuffer — accumulate pushes in memory and commit them as one bulk upsert.

batchpush() only validates and appends; storage is untouched until
flush(), which turns every buffered request into the same upsert a single
push would issue and hands them to the storage port as one ordered bulk
pass. The buffer is emptied whether or not that pass succeeds.

Each entry's upsert is atomic on its own; the batch as a whole is not. If
the backend fails part way, entries before the failure stay applied and the
StorageUnavailableError propagates to the caller.

A PushBuffer belongs to one producer. It holds plain in-process state and is
not safe to share across threads without external synchronization.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime

from dequeue.core import filters
from dequeue.domain.fingerprint import Fingerprinter
from dequeue.domain.models import PushRequest
from dequeue.ports.storage import DocumentStoragePort, UpsertOp


@dataclasses.dataclass
class PushBuffer:
    """
    Ordered buffer of validated push requests.

    Parameters
    ----------
    fingerprint      : derives duplicate keys for requests without one
    default_priority : priority given to newly inserted records
    """

    fingerprint: Fingerprinter
    default_priority: int

    _pending: list[PushRequest] = dataclasses.field(
        default_factory=list, init=False, repr=False
    )

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> tuple[PushRequest, ...]:
        return tuple(self._pending)

    def append(self, request: PushRequest) -> None:
        if request.duplicate_key is None:
            request = request.model_copy(
                update={"duplicate_key": self.fingerprint(request.body)}
            )
        self._pending.append(request)

    def to_ops(self, now: datetime) -> list[UpsertOp]:
        return [
            UpsertOp(
                filter=filters.live_duplicate(request.duplicate_key or ""),
                update=filters.merge_update(request, now, self.default_priority),
            )
            for request in self._pending
        ]

    async def flush(self, storage: DocumentStoragePort, now: datetime) -> int:
        """Apply every buffered request; always leaves the buffer empty."""
        if not self._pending:
            return 0
        try:
            return await storage.bulk_upsert(self.to_ops(now))
        finally:
            self._pending.clear()
