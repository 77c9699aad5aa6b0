from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from dequeue.domain.models import (
    GroupCount,
    LeasedItem,
    PushRequest,
    QueueItem,
    QueueStats,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def _item(**overrides) -> QueueItem:
    document = {
        "_id": "item-1",
        "body": {"task": "resize"},
        "duplicate_key": "k",
        "priority": 3,
        "inserted_at": NOW,
    }
    document.update(overrides)
    return QueueItem.from_document(document)


# ---------------------------------------------------------------------------
# PushRequest
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("body", ["text", 42, 4.2, {"a": 1}, [1, 2]])
def test_push_request_accepts_supported_bodies(body):
    assert PushRequest(body=body).body == body


@pytest.mark.parametrize("body", [None, True, b"bytes", {1: "int key"}])
def test_push_request_rejects_unsupported_bodies(body):
    with pytest.raises(ValidationError):
        PushRequest(body=body)


def test_push_request_rejects_non_int_priority():
    with pytest.raises(ValidationError):
        PushRequest(body="x", priority="high")  # type: ignore[arg-type]


def test_push_request_rejects_bool_priority():
    with pytest.raises(ValidationError):
        PushRequest(body="x", priority=True)


def test_push_request_rejects_empty_duplicate_key():
    with pytest.raises(ValidationError):
        PushRequest(body="x", duplicate_key="")


def test_push_request_defaults():
    request = PushRequest(body="x")
    assert request.priority is None
    assert request.duplicate_key is None


# ---------------------------------------------------------------------------
# QueueItem
# ---------------------------------------------------------------------------


def test_item_defaults():
    item = _item()
    assert item.id == "item-1"
    assert item.count == 1
    assert item.locked is False
    assert item.locked_till is None
    assert item.complete is False
    assert item.completed_at is None
    assert item.completecount == 0


def test_item_is_frozen():
    item = _item()
    with pytest.raises(ValidationError):
        item.priority = 9


def test_item_to_document_uses_storage_id():
    document = _item().to_document()
    assert document["_id"] == "item-1"
    assert "id" not in document
    assert document["inserted_at"] == NOW


def test_item_accepts_field_name_for_id():
    item = QueueItem(
        id="by-name", duplicate_key="k", priority=1, inserted_at=NOW
    )
    assert item.id == "by-name"


def test_unlocked_item_is_available():
    assert _item().is_available(NOW)


def test_live_lease_is_not_available():
    item = _item(locked=True, locked_till=NOW + timedelta(seconds=10))
    assert not item.is_available(NOW)
    assert item.has_live_lease(NOW)


def test_expired_lease_is_available():
    item = _item(locked=True, locked_till=NOW - timedelta(seconds=1))
    assert item.is_available(NOW)
    assert not item.has_live_lease(NOW)


def test_lease_without_expiry_never_lapses():
    item = _item(locked=True, locked_till=None)
    assert not item.is_available(NOW, lease_expiry=True)
    assert not item.is_available(NOW, lease_expiry=False)
    assert item.has_live_lease(NOW)


def test_complete_item_is_never_available():
    item = _item(complete=True)
    assert not item.is_available(NOW)
    assert not item.is_available(NOW, lease_expiry=False)


def test_redundant_completions():
    assert _item().redundant_completions == 0
    assert _item(complete=True, completecount=1).redundant_completions == 0
    assert _item(complete=True, completecount=3).redundant_completions == 2


# ---------------------------------------------------------------------------
# LeasedItem / QueueStats
# ---------------------------------------------------------------------------


def test_leased_item_fields():
    leased = LeasedItem(id="x", body="foo", locked_till=NOW)
    assert leased.id == "x"
    assert leased.body == "foo"
    assert leased.locked_till == NOW


def test_queue_stats_defaults_are_empty():
    stats = QueueStats()
    assert stats.total == 0
    assert stats.priority == ()
    assert stats.tasks == ()


def test_group_count_key_may_be_none():
    group = GroupCount(key=None, complete=1, waiting=3)
    assert group.key is None
    assert group.waiting == 3
