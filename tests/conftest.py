from datetime import UTC, datetime, timedelta

import pytest

from dequeue.adapters.storage.memory import InMemoryStorage
from dequeue.config import QueueSettings
from dequeue.core.queue import DocumentQueue


class FakeClock:
    """Controllable UTC clock handed to DocumentQueue(clock=...)."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def settings() -> QueueSettings:
    return QueueSettings(timeout=60, default_priority=3)


@pytest.fixture
def queue(
    storage: InMemoryStorage, settings: QueueSettings, clock: FakeClock
) -> DocumentQueue:
    return DocumentQueue(storage=storage, settings=settings, clock=clock)
