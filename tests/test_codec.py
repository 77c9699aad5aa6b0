import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from dequeue.core import codec

NOW = datetime(2024, 1, 1, 12, 30, tzinfo=UTC)


def _document(**overrides) -> dict:
    document = {
        "_id": "abc",
        "body": {"task": "resize", "size": [1, 2]},
        "duplicate_key": "k",
        "priority": 3,
        "inserted_at": NOW,
        "count": 2,
        "locked": True,
        "locked_till": NOW,
        "complete": False,
        "completed_at": None,
        "completecount": 0,
    }
    document.update(overrides)
    return document


def test_decode_empty_bytes_returns_no_documents():
    assert codec.decode(b"") == []


def test_encode_is_valid_json_with_items():
    data = json.loads(codec.encode([_document()]))
    assert list(data) == ["items"]
    assert data["items"][0]["_id"] == "abc"
    assert "id" not in data["items"][0]


def test_encode_datetime_in_iso8601():
    data = json.loads(codec.encode([_document()]))
    inserted_at = data["items"][0]["inserted_at"]
    assert "T" in inserted_at
    assert "+" in inserted_at or "Z" in inserted_at


def test_decode_restores_datetimes_and_body():
    [restored] = codec.decode(codec.encode([_document()]))
    assert restored["inserted_at"] == NOW
    assert restored["locked_till"] == NOW
    assert restored["body"] == {"task": "resize", "size": [1, 2]}
    assert restored["count"] == 2


def test_decode_preserves_document_order():
    documents = [_document(_id=str(i)) for i in range(5)]
    restored = codec.decode(codec.encode(documents))
    assert [d["_id"] for d in restored] == ["0", "1", "2", "3", "4"]


def test_decode_fills_missing_defaults():
    raw = json.dumps(
        {
            "items": [
                {
                    "_id": "x",
                    "body": "b",
                    "duplicate_key": "k",
                    "priority": 1,
                    "inserted_at": "2024-01-01T00:00:00Z",
                }
            ]
        }
    ).encode()
    [restored] = codec.decode(raw)
    assert restored["completecount"] == 0
    assert restored["locked"] is False


def test_encode_rejects_documents_that_are_not_items():
    with pytest.raises(ValidationError):
        codec.encode([{"_id": "x", "unrelated": True}])
