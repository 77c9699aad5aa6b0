"""
LocalFileSystemStorage — fcntl.flock-guarded JSON document file for POSIX systems.

Suitable for local development, single-machine deployments, or integration
tests that need a persistent file rather than in-memory state. Several worker
processes on one machine can share the same file.

NOT suitable for multi-machine deployments — use MongoStorage for
distributed workloads.

Atomicity
---------
Each mutating call opens the file, takes an exclusive flock, decodes the
documents, applies the operation, rewrites the file and releases the lock.
The whole read-modify-write happens under one lock scope, so a
find_one_and_update from one process can never interleave with another's.
Read-only calls take a shared lock and never create the file.

POSIX-only (Linux, macOS). Not compatible with NFS or distributed filesystems.
"""

from __future__ import annotations

import asyncio
import dataclasses
import fcntl
import os
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError

from dequeue.adapters.storage.collection import DocumentCollection
from dequeue.core import codec
from dequeue.domain.errors import StorageUnavailableError
from dequeue.log import get_logger
from dequeue.ports.storage import Document, Filter, Sort, Update, UpsertOp

T = TypeVar("T")

logger = get_logger(__name__)


@dataclasses.dataclass
class LocalFileSystemStorage:
    """
    Stores the queue documents in a local file.

    Parameters
    ----------
    path : path to the JSON document file (parent directory created if absent)
    """

    path: Path

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def find_one_and_update(
        self,
        filter: Filter,
        update: Update,
        *,
        sort: Sort | None = None,
        upsert: bool = False,
    ) -> Document | None:
        return await self._write(
            lambda c: c.find_one_and_update(filter, update, sort=sort, upsert=upsert)
        )

    async def update_one(
        self,
        filter: Filter,
        update: Update,
        *,
        upsert: bool = False,
    ) -> bool:
        return await self._write(lambda c: c.update_one(filter, update, upsert=upsert))

    async def bulk_upsert(self, ops: Sequence[UpsertOp]) -> int:
        return await self._write(lambda c: c.bulk_upsert(ops))

    async def find(
        self,
        filter: Filter,
        *,
        sort: Sort | None = None,
        limit: int = 0,
    ) -> list[Document]:
        return await self._read(lambda c: c.find(filter, sort=sort, limit=limit))

    async def count(self, filter: Filter) -> int:
        return await self._read(lambda c: c.count(filter))

    async def aggregate(
        self,
        match: Filter,
        group_by: str | None,
        accumulators: Mapping[str, Mapping[str, Any]],
    ) -> list[Document]:
        return await self._read(lambda c: c.aggregate(match, group_by, accumulators))

    async def delete_many(self, filter: Filter) -> int:
        return await self._write(lambda c: c.delete_many(filter))

    async def drop(self) -> None:
        await self._write(lambda c: c.clear())

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    async def _read(self, fn: Callable[[DocumentCollection], T]) -> T:
        return await asyncio.to_thread(self._sync_read, fn)

    async def _write(self, fn: Callable[[DocumentCollection], T]) -> T:
        return await asyncio.to_thread(self._sync_write, fn)

    def _sync_read(self, fn: Callable[[DocumentCollection], T]) -> T:
        if not self.path.exists():
            return fn(DocumentCollection())
        try:
            with open(self.path, "rb") as fh:
                fcntl.flock(fh, fcntl.LOCK_SH)
                try:
                    content = fh.read()
                finally:
                    fcntl.flock(fh, fcntl.LOCK_UN)
        except OSError as exc:
            logger.error("storage_read_failed", path=str(self.path), error=str(exc))
            raise StorageUnavailableError("File read failed", exc) from exc
        return fn(DocumentCollection.from_documents(_decode(self.path, content)))

    def _sync_write(self, fn: Callable[[DocumentCollection], T]) -> T:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as exc:
            logger.error("storage_open_failed", path=str(self.path), error=str(exc))
            raise StorageUnavailableError("File open failed", exc) from exc

        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            collection = DocumentCollection.from_documents(
                _decode(self.path, _read_all(fd))
            )
            result = fn(collection)
            try:
                content = codec.encode(collection.documents.values())
            except ValidationError as exc:
                logger.error(
                    "storage_encode_failed", path=str(self.path), error=str(exc)
                )
                raise StorageUnavailableError("File encode failed", exc) from exc
            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            _write_all(fd, content)
            return result
        except OSError as exc:
            logger.error("storage_write_failed", path=str(self.path), error=str(exc))
            raise StorageUnavailableError("File write failed", exc) from exc
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)


def _decode(path: Path, content: bytes) -> list[Document]:
    try:
        return codec.decode(content)
    except ValidationError as exc:
        logger.error("storage_decode_failed", path=str(path), error=str(exc))
        raise StorageUnavailableError("File decode failed", exc) from exc


def _read_all(fd: int) -> bytes:
    os.lseek(fd, 0, os.SEEK_SET)
    chunks: list[bytes] = []
    while chunk := os.read(fd, 65536):
        chunks.append(chunk)
    return b"".join(chunks)


def _write_all(fd: int, content: bytes) -> None:
    view = memoryview(content)
    while view:
        written = os.write(fd, view)
        view = view[written:]
