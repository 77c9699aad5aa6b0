"""
Duplication fingerprints: map a body to the string that merges pushes.

A fingerprint is content-addressed: the MD5 hex digest of the body's
canonical JSON form. Mapping keys are sorted and separators are compact, so
two mappings with the same items collide regardless of key order, and a
string "42" never collides with the number 42.

Any callable with the Fingerprinter signature can replace the default via
DocumentQueue(fingerprint=...).
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from typing import Any

from dequeue.domain.errors import MalformedInputError

Fingerprinter = Callable[[Any], str]


def canonical_json(body: Any) -> str:
    """Serialize body deterministically. Raises MalformedInputError if not JSON-able."""
    try:
        return json.dumps(
            body,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise MalformedInputError(f"body is not JSON serializable: {exc}") from exc


def canonical_fingerprint(body: Any) -> str:
    """Default fingerprint: md5 of canonical_json(body)."""
    return hashlib.md5(
        canonical_json(body).encode("utf-8"), usedforsecurity=False
    ).hexdigest()
