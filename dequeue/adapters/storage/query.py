"""
Evaluator for the document query dialect described in dequeue.ports.storage.

Pure functions over plain dicts, used by the local adapters (memory and
filesystem). Semantics follow MongoDB where the subset overlaps:

  - a None equality matches a missing field as well as an explicit null
  - ordering comparisons never match a missing or null field
  - bools only equal bools (True is not 1)
  - sort ranks values by type first (null < numbers < strings < mappings
    < lists < bools < datetimes), then by value
"""

from __future__ import annotations

import copy
import datetime
from collections.abc import Iterable, Mapping
from typing import Any

from dequeue.ports.storage import Document, Filter, Sort, Update

_MISSING: Any = object()

_COMPARISONS = {
    "$lt": lambda a, b: a < b,
    "$lte": lambda a, b: a <= b,
    "$gt": lambda a, b: a > b,
    "$gte": lambda a, b: a >= b,
}


# ------------------------------------------------------------------ #
# Paths                                                                #
# ------------------------------------------------------------------ #


def get_path(document: Mapping[str, Any], path: str) -> Any:
    """Value at a dotted path, or _MISSING."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def set_path(document: dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted path, creating intermediate mappings."""
    *parents, leaf = path.split(".")
    current = document
    for part in parents:
        current = current.setdefault(part, {})
    current[leaf] = value


# ------------------------------------------------------------------ #
# Matching                                                             #
# ------------------------------------------------------------------ #


def matches(document: Mapping[str, Any], filter: Filter) -> bool:
    """True if document satisfies every clause of filter."""
    for key, condition in filter.items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported filter operator {key!r}")
        elif not _match_value(get_path(document, key), condition):
            return False
    return True


def _is_operator_clause(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def _match_value(value: Any, condition: Any) -> bool:
    if not _is_operator_clause(condition):
        return _equals(value, condition)
    for op, arg in condition.items():
        if op == "$ne":
            ok = not _equals(value, arg)
        elif op == "$in":
            ok = any(_equals(value, candidate) for candidate in arg)
        elif op in _COMPARISONS:
            ok = _compare(op, value, arg)
        else:
            raise ValueError(f"Unsupported filter operator {op!r}")
        if not ok:
            return False
    return True


def _equals(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is _MISSING or value is None
    if value is _MISSING:
        return False
    if isinstance(value, bool) != isinstance(expected, bool):
        return False
    return value == expected


def _compare(op: str, value: Any, arg: Any) -> bool:
    if value is _MISSING or value is None or arg is None:
        return False
    if _type_rank(value) != _type_rank(arg):
        return False
    try:
        return bool(_COMPARISONS[op](value, arg))
    except TypeError:
        return False


# ------------------------------------------------------------------ #
# Updates                                                              #
# ------------------------------------------------------------------ #


def seed_from_filter(filter: Filter) -> Document:
    """Fields an upsert copies from its filter: plain top-level equalities."""
    seed: Document = {}
    for key, condition in filter.items():
        if key.startswith("$") or _is_operator_clause(condition):
            continue
        set_path(seed, key, copy.deepcopy(condition))
    return seed


def apply_update(document: Document, update: Update, *, inserting: bool) -> None:
    """Apply $set / $inc / $setOnInsert to document in place."""
    for op, fields in update.items():
        if op == "$setOnInsert":
            if not inserting:
                continue
            for path, value in fields.items():
                set_path(document, path, copy.deepcopy(value))
        elif op == "$set":
            for path, value in fields.items():
                set_path(document, path, copy.deepcopy(value))
        elif op == "$inc":
            for path, amount in fields.items():
                current = get_path(document, path)
                if current is _MISSING or current is None:
                    current = 0
                if not _is_number(current) or not _is_number(amount):
                    raise TypeError(f"Cannot increment non-numeric field {path!r}")
                set_path(document, path, current + amount)
        else:
            raise ValueError(f"Unsupported update operator {op!r}")


# ------------------------------------------------------------------ #
# Sorting                                                              #
# ------------------------------------------------------------------ #


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _type_rank(value: Any) -> int:
    if value is _MISSING or value is None:
        return 0
    if _is_number(value):
        return 1
    if isinstance(value, str):
        return 2
    if isinstance(value, Mapping):
        return 3
    if isinstance(value, (list, tuple)):
        return 4
    if isinstance(value, bool):
        return 5
    if isinstance(value, datetime.datetime):
        return 6
    return 7


def order_key(value: Any) -> tuple[int, Any]:
    """Total ordering key across mixed value types."""
    rank = _type_rank(value)
    if rank == 0:
        return (0, 0)
    if rank in (3, 4, 7):
        return (rank, repr(value))
    return (rank, value)


def sort_documents(documents: Iterable[Document], sort: Sort) -> list[Document]:
    """Stable multi-key sort; ties keep their incoming order."""
    ordered = list(documents)
    for field, direction in reversed(list(sort)):
        ordered.sort(
            key=lambda doc, f=field: order_key(get_path(doc, f)),
            reverse=direction < 0,
        )
    return ordered


# ------------------------------------------------------------------ #
# Grouping                                                             #
# ------------------------------------------------------------------ #


def _truthy(value: Any) -> bool:
    if value is _MISSING or value is None or value is False:
        return False
    if _is_number(value):
        return value != 0
    return True


def _resolve(document: Mapping[str, Any], expr: Any) -> Any:
    if isinstance(expr, str) and expr.startswith("$"):
        return get_path(document, expr[1:])
    return expr


def _sum_term(document: Mapping[str, Any], expr: Any) -> int | float:
    if isinstance(expr, Mapping):
        if "$cond" not in expr:
            raise ValueError(f"Unsupported accumulator expression {expr!r}")
        predicate, if_true, if_false = expr["$cond"]
        chosen = if_true if _truthy(_resolve(document, predicate)) else if_false
        return _sum_term(document, chosen)
    value = _resolve(document, expr)
    return value if _is_number(value) else 0


def accumulate(
    documents: Iterable[Document],
    group_by: str | None,
    accumulators: Mapping[str, Mapping[str, Any]],
) -> list[Document]:
    """Group documents and total each accumulator; groups ordered by key."""
    groups: dict[Any, Document] = {}
    for document in documents:
        key = None if group_by is None else get_path(document, group_by)
        if key is _MISSING:
            key = None
        token = order_key(key)
        group = groups.get(token)
        if group is None:
            group = {"_id": copy.deepcopy(key)}
            group.update({name: 0 for name in accumulators})
            groups[token] = group
        for name, spec in accumulators.items():
            if "$sum" not in spec:
                raise ValueError(f"Unsupported accumulator {spec!r}")
            group[name] += _sum_term(document, spec["$sum"])
    return [groups[token] for token in sorted(groups)]
