"""
Corvid Query Cursor - chainable, immutable, deferred find.

Every chain method returns a NEW cursor (immutable cloning); nothing
touches the backend until the cursor is awaited or iterated. Awaiting the
same cursor twice issues the query twice.

Usage:
    users = await User.find({"age": {"$gte": 18}}).sort("-age", "name").skip(10).limit(10)
    async for user in User.find().join("friends"):
        ...
    ann = await User.find_one({"name": "Ann"}).join()
    n = await User.find({"active": True}).count()

skip and limit compose the same way whatever order they are called in:
skip is applied first, then limit.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple, Type, Union, TYPE_CHECKING

from ..faults.domains import QueryFault

if TYPE_CHECKING:
    from .document import Document

logger = logging.getLogger("corvid.models.query")

__all__ = ["QueryCursor", "normalize_sort", "check_projection"]


SortSpec = Union[str, Mapping, List, Tuple]


def normalize_sort(model_name: str, *specs: SortSpec) -> List[Tuple[str, int]]:
    """
    Turn sort arguments into ``[(field, direction), ...]``.

    Accepts ``{"name": 1}``, ``[("name", 1)]``, ``"name"`` and ``"-name"``.
    """
    pairs: List[Tuple[str, int]] = []
    for spec in specs:
        if isinstance(spec, str):
            if spec.startswith("-"):
                pairs.append((spec[1:], -1))
            else:
                pairs.append((spec.lstrip("+"), 1))
            continue
        items = spec.items() if isinstance(spec, Mapping) else spec
        try:
            items = list(items)
        except TypeError:
            raise QueryFault(model_name, "sort", f"unsupported sort spec {spec!r}") from None
        for item in items:
            if isinstance(item, str):
                pairs.extend(normalize_sort(model_name, item))
                continue
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise QueryFault(model_name, "sort", f"expected (field, direction), got {item!r}")
            field, direction = item
            if isinstance(direction, bool) or direction not in (1, -1):
                raise QueryFault(model_name, "sort", f"direction for '{field}' must be 1 or -1, got {direction!r}")
            pairs.append((field, int(direction)))
    for field, _ in pairs:
        if not field:
            raise QueryFault(model_name, "sort", "empty field name")
    return pairs


def check_projection(model_name: str, projection: Optional[Mapping[str, Any]]) -> Optional[Dict[str, int]]:
    """Validate a projection: all-inclusion or all-exclusion, ``_id`` excepted."""
    if projection is None:
        return None
    if not isinstance(projection, Mapping):
        raise QueryFault(model_name, "projection", f"expected a mapping, got {type(projection).__name__}")
    normalized = {field: 1 if flag else 0 for field, flag in projection.items()}
    modes = {flag for field, flag in normalized.items() if field != "_id"}
    if len(modes) > 1:
        raise QueryFault(model_name, "projection", "cannot mix inclusion and exclusion")
    return normalized


class QueryCursor:
    """
    Deferred find over one model's collection.

    Materializes to a list of Instances (or plain dicts when a projection
    is given); the single-result variant materializes to one Instance or
    None.
    """

    __slots__ = (
        "_model_cls",
        "_filter",
        "_projection",
        "_sort",
        "_skip",
        "_limit",
        "_join",
        "_single",
    )

    def __init__(
        self,
        model_cls: Type[Document],
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        *,
        single: bool = False,
    ):
        if filter is not None and not isinstance(filter, Mapping):
            raise QueryFault(model_cls.__name__, "find", f"filter must be a mapping, got {type(filter).__name__}")
        self._model_cls = model_cls
        self._filter: Dict[str, Any] = dict(filter or {})
        self._projection = check_projection(model_cls.__name__, projection)
        self._sort: List[Tuple[str, int]] = []
        self._skip: int = 0
        self._limit: Optional[int] = None
        # None: no join; (): every reference field; otherwise named fields
        self._join: Optional[Tuple[str, ...]] = None
        self._single = single

    # ── Chain methods (return new cursor) ────────────────────────────

    def sort(self, *specs: SortSpec) -> QueryCursor:
        """
        Add sort keys. Repeated calls append keys after the existing ones.

        Usage:
            User.find().sort({"age": -1}).sort("name")
            User.find().sort("-age", "name")
        """
        new = self._clone()
        new._sort.extend(normalize_sort(self._model_cls.__name__, *specs))
        return new

    def skip(self, n: int) -> QueryCursor:
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise QueryFault(self._model_cls.__name__, "skip", f"expected a non-negative integer, got {n!r}")
        new = self._clone()
        new._skip = n
        return new

    def limit(self, n: Optional[int]) -> QueryCursor:
        if n is not None and (isinstance(n, bool) or not isinstance(n, int) or n < 0):
            raise QueryFault(self._model_cls.__name__, "limit", f"expected a non-negative integer, got {n!r}")
        new = self._clone()
        new._limit = n or None
        return new

    def join(self, *fields: str) -> QueryCursor:
        """Expand reference fields on the results (all of them when none are named)."""
        if self._projection is not None:
            raise QueryFault(self._model_cls.__name__, "join", "projected results are plain documents and cannot be joined")
        new = self._clone()
        if not fields:
            new._join = ()
        elif new._join == ():
            pass
        else:
            names = list(new._join or ())
            names.extend(f for f in fields if f not in names)
            new._join = tuple(names)
        return new

    def __getitem__(self, key: Any) -> QueryCursor:
        """
        Slicing maps onto skip/limit.

        Usage:
            page = User.find().sort("name")[10:20]
        """
        if isinstance(key, slice):
            if key.step not in (None, 1):
                raise QueryFault(self._model_cls.__name__, "slice", "slice steps are not supported")
            start = key.start or 0
            new = self.skip(start)
            if key.stop is not None:
                new = new.limit(key.stop - start) if key.stop > start else new._empty()
            return new
        if isinstance(key, int) and not isinstance(key, bool):
            return self.skip(key).limit(1)
        raise TypeError(f"QueryCursor indices must be integers or slices, not {type(key).__name__}")

    def _empty(self) -> QueryCursor:
        new = self._clone()
        new._limit = 0
        return new

    # ── Internal ─────────────────────────────────────────────────────

    def _clone(self) -> QueryCursor:
        """Create an immutable copy of this cursor."""
        c = QueryCursor.__new__(QueryCursor)
        c._model_cls = self._model_cls
        c._filter = self._filter
        c._projection = self._projection
        c._sort = self._sort.copy()
        c._skip = self._skip
        c._limit = self._limit
        c._join = self._join
        c._single = self._single
        return c

    # ── Terminal methods (async, execute query) ──────────────────────

    async def all(self) -> List[Any]:
        """Execute and return every result."""
        cls = self._model_cls
        if self._limit == 0:
            return []
        db = cls._get_db()
        docs = await db.find(
            cls.collection_name(),
            self._filter,
            self._projection,
            sort=self._sort,
            skip=self._skip,
            limit=1 if self._single else self._limit,
        )
        if self._projection is not None:
            return docs
        instances = [cls._from_document(doc) for doc in docs]
        if self._join is not None and instances:
            from .references import resolver
            await resolver.join(instances, self._join or None)
        return instances

    async def first(self) -> Optional[Any]:
        """Return the first result or None."""
        results = await self.limit(1).all() if not self._single else await self.all()
        return results[0] if results else None

    async def count(self) -> int:
        """Count matching documents (skip and limit are ignored)."""
        cls = self._model_cls
        return await cls._get_db().count(cls.collection_name(), self._filter)

    def __await__(self):
        if self._single:
            return self.first().__await__()
        return self.all().__await__()

    def __aiter__(self):
        """
        Async iteration over results.

        Usage:
            async for user in User.find({"active": True}):
                print(user.name)
        """
        return _CursorIterator(self)

    def __repr__(self) -> str:
        kind = "find_one" if self._single else "find"
        return (
            f"<QueryCursor {self._model_cls.__name__}.{kind}({self._filter!r}) "
            f"sort={self._sort} skip={self._skip} limit={self._limit} join={self._join}>"
        )


class _CursorIterator:
    """Async iterator that runs the query on the first step."""

    __slots__ = ("_cursor", "_results", "_index")

    def __init__(self, cursor: QueryCursor):
        self._cursor = cursor
        self._results: Optional[List[Any]] = None
        self._index = 0

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        if self._results is None:
            if self._cursor._single:
                found = await self._cursor.first()
                self._results = [] if found is None else [found]
            else:
                self._results = await self._cursor.all()
        if self._index >= len(self._results):
            raise StopAsyncIteration
        item = self._results[self._index]
        self._index += 1
        return item
