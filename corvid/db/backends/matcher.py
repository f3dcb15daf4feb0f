"""
Mongo-convention document matching, projection and ordering.

Used by the in-memory backend to evaluate the same filter, projection and
sort documents a MongoDB server would.

Supported filter operators:
    $eq $ne $gt $gte $lt $lte $in $nin $exists $regex/$options $not $size $all
    top-level: $and $or $nor $where (a Python callable taking the document)

Dot paths reach into embedded documents and array elements; a condition on
an array field matches when any element matches.
"""

from __future__ import annotations

import copy
import datetime
import functools
import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

__all__ = [
    "MatcherError",
    "MISSING",
    "values_equal",
    "matches",
    "lookup",
    "project",
    "compare_values",
    "sort_documents",
]


class MatcherError(ValueError):
    """Malformed filter, projection or sort document."""


class _Missing:
    def __repr__(self):
        return "<missing>"


MISSING = _Missing()


# ── Paths ────────────────────────────────────────────────────────────────────

def lookup(doc: Mapping[str, Any], path: str) -> List[Any]:
    """
    All values reachable at ``path`` (``MISSING`` where nothing is).

    ``lookup({"a": [{"b": 1}, {"b": 2}]}, "a.b")`` is ``[[1, 2]]`` flattened
    to ``[1, 2]``; numeric steps index into arrays.
    """
    values: List[Any] = [doc]
    for part in path.split("."):
        found: List[Any] = []
        for value in values:
            if isinstance(value, Mapping):
                found.append(value[part] if part in value else MISSING)
            elif isinstance(value, list):
                if part.isdigit():
                    index = int(part)
                    found.append(value[index] if index < len(value) else MISSING)
                    continue
                hits = [item[part] for item in value if isinstance(item, Mapping) and part in item]
                found.extend(hits or [MISSING])
            else:
                found.append(MISSING)
        values = found
    return values


def _first(doc: Mapping[str, Any], path: str) -> Any:
    value = lookup(doc, path)[0]
    return None if value is MISSING else value


# ── Comparison ───────────────────────────────────────────────────────────────

def _rank(value: Any) -> int:
    # MongoDB BSON comparison order
    if value is None or value is MISSING:
        return 1
    if isinstance(value, bool):
        return 8
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, str):
        return 3
    if isinstance(value, Mapping):
        return 4
    if isinstance(value, (list, tuple)):
        return 5
    if isinstance(value, datetime.datetime):
        return 9
    return 10


def compare_values(a: Any, b: Any) -> int:
    """Total order over mixed values: -1, 0 or 1."""
    ra, rb = _rank(a), _rank(b)
    if ra != rb:
        return -1 if ra < rb else 1
    if ra == 1:
        return 0
    if ra == 5:
        for x, y in zip(a, b):
            result = compare_values(x, y)
            if result:
                return result
        return (len(a) > len(b)) - (len(a) < len(b))
    if ra == 4:
        for (ka, va), (kb, vb) in zip(a.items(), b.items()):
            result = compare_values(ka, kb) or compare_values(va, vb)
            if result:
                return result
        return (len(a) > len(b)) - (len(a) < len(b))
    if ra == 10:
        a, b = str(a), str(b)
    return (a > b) - (a < b)


def values_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return len(a) == len(b) and all(k in b and values_equal(v, b[k]) for k, v in a.items())
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    try:
        return a == b
    except TypeError:
        return False


def _expand(values: Sequence[Any]) -> List[Any]:
    """Candidates plus the elements of array candidates."""
    expanded: List[Any] = []
    for value in values:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


def _any_equal(values: Sequence[Any], target: Any) -> bool:
    if isinstance(target, re.Pattern):
        return _any_regex(values, target)
    for value in _expand(values):
        if value is MISSING:
            if target is None:
                return True
            continue
        if values_equal(value, target):
            return True
    return False


def _comparable(a: Any, b: Any) -> bool:
    if a is MISSING or a is None or b is None:
        return False
    ra, rb = _rank(a), _rank(b)
    return ra == rb and ra in (2, 3, 8, 9)


def _any_compare(values: Sequence[Any], operand: Any, test: Callable[[int], bool]) -> bool:
    for value in _expand(values):
        if _comparable(value, operand):
            try:
                if test(compare_values(value, operand)):
                    return True
            except TypeError:
                continue
    return False


def _compile_regex(pattern: Any, options: str = "") -> re.Pattern:
    if isinstance(pattern, re.Pattern):
        if not options:
            return pattern
        pattern = pattern.pattern
    if not isinstance(pattern, str):
        raise MatcherError(f"$regex expects a string or compiled pattern, got {pattern!r}")
    flags = 0
    for char in options:
        flag = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}.get(char)
        if flag is None:
            raise MatcherError(f"unsupported $options flag {char!r}")
        flags |= flag
    return re.compile(pattern, flags)


def _any_regex(values: Sequence[Any], pattern: re.Pattern) -> bool:
    return any(isinstance(v, str) and pattern.search(v) for v in _expand(values))


# ── Filters ──────────────────────────────────────────────────────────────────

def _is_operator_doc(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def _match_field(values: List[Any], condition: Any) -> bool:
    if not _is_operator_doc(condition):
        return _any_equal(values, condition)
    for op, operand in condition.items():
        if not _apply(values, op, operand, condition):
            return False
    return True


def _apply(values: List[Any], op: str, operand: Any, condition: Mapping[str, Any]) -> bool:
    if op == "$eq":
        return _any_equal(values, operand)
    if op == "$ne":
        return not _any_equal(values, operand)
    if op == "$gt":
        return _any_compare(values, operand, lambda r: r > 0)
    if op == "$gte":
        return _any_compare(values, operand, lambda r: r >= 0)
    if op == "$lt":
        return _any_compare(values, operand, lambda r: r < 0)
    if op == "$lte":
        return _any_compare(values, operand, lambda r: r <= 0)
    if op in ("$in", "$nin"):
        if not isinstance(operand, (list, tuple, set)):
            raise MatcherError(f"{op} expects an array, got {operand!r}")
        hit = any(_any_equal(values, candidate) for candidate in operand)
        return hit if op == "$in" else not hit
    if op == "$exists":
        present = any(v is not MISSING for v in values)
        return present == bool(operand)
    if op == "$regex":
        return _any_regex(values, _compile_regex(operand, condition.get("$options", "")))
    if op == "$options":
        if "$regex" not in condition:
            raise MatcherError("$options requires $regex")
        return True
    if op == "$not":
        if isinstance(operand, (str, re.Pattern)):
            return not _any_regex(values, _compile_regex(operand))
        if not _is_operator_doc(operand):
            raise MatcherError(f"$not expects an operator document or regex, got {operand!r}")
        return not _match_field(values, operand)
    if op == "$size":
        return any(isinstance(v, list) and len(v) == operand for v in values)
    if op == "$all":
        if not isinstance(operand, (list, tuple)):
            raise MatcherError(f"$all expects an array, got {operand!r}")
        return all(_any_equal(values, item) for item in operand)
    raise MatcherError(f"unsupported operator {op!r}")


def matches(doc: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
    """True if ``doc`` satisfies ``filter``."""
    if not filter:
        return True
    for key, condition in filter.items():
        if key in ("$and", "$or", "$nor"):
            if not isinstance(condition, (list, tuple)):
                raise MatcherError(f"{key} expects an array of filters")
            results = (matches(doc, sub) for sub in condition)
            if key == "$and" and not all(results):
                return False
            if key == "$or" and not any(results):
                return False
            if key == "$nor" and any(results):
                return False
        elif key == "$where":
            if not callable(condition):
                raise MatcherError("$where expects a callable taking the document")
            if not condition(doc):
                return False
        elif key.startswith("$"):
            raise MatcherError(f"unsupported top-level operator {key!r}")
        elif not _match_field(lookup(doc, key), condition):
            return False
    return True


# ── Projection ───────────────────────────────────────────────────────────────

def _copy_path(source: Mapping[str, Any], target: Dict[str, Any], parts: List[str]) -> None:
    head = parts[0]
    if head not in source:
        return
    if len(parts) == 1:
        target[head] = copy.deepcopy(source[head])
        return
    child = source[head]
    if isinstance(child, Mapping):
        _copy_path(child, target.setdefault(head, {}), parts[1:])


def _drop_path(target: Dict[str, Any], parts: List[str]) -> None:
    head = parts[0]
    if head not in target:
        return
    if len(parts) == 1:
        del target[head]
    elif isinstance(target[head], dict):
        _drop_path(target[head], parts[1:])


def project(doc: Mapping[str, Any], projection: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy of ``doc`` shaped by ``projection`` (``_id`` kept unless excluded)."""
    if not projection:
        return copy.deepcopy(dict(doc))
    keep_id = bool(projection.get("_id", 1))
    paths = {path: bool(flag) for path, flag in projection.items() if path != "_id"}
    modes = set(paths.values())
    if len(modes) > 1:
        raise MatcherError("projection cannot mix inclusion and exclusion")
    if modes == {True}:
        result: Dict[str, Any] = {}
        if keep_id and "_id" in doc:
            result["_id"] = doc["_id"]
        for path in paths:
            _copy_path(doc, result, path.split("."))
        return result
    result = copy.deepcopy(dict(doc))
    for path in paths:
        _drop_path(result, path.split("."))
    if not keep_id:
        result.pop("_id", None)
    return result


# ── Ordering ─────────────────────────────────────────────────────────────────

def sort_documents(docs: List[Dict[str, Any]], spec: Sequence[Tuple[str, int]]) -> List[Dict[str, Any]]:
    """Stable multi-key sort of ``docs`` by ``[(path, 1 | -1), ...]``."""
    ordered = list(docs)
    for path, direction in reversed(list(spec)):
        if direction not in (1, -1):
            raise MatcherError(f"sort direction for '{path}' must be 1 or -1")
        key = functools.cmp_to_key(
            lambda a, b, p=path: compare_values(_first(a, p), _first(b, p))
        )
        ordered.sort(key=key, reverse=direction == -1)
    return ordered
