"""
Corvid DB Backend - Base Adapter Interface.

All document-store backends implement this interface. The
``DocumentDatabase`` engine delegates to the appropriate adapter based on
the connection URL.

Filters, projections and sort specs follow MongoDB conventions:
- filter: ``{field: value}`` or ``{field: {"$op": operand}}``
- projection: ``{field: 1 | 0}``, ``_id`` included unless excluded
- sort: ``[(field, 1 | -1), ...]``
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger("corvid.db.backends")

__all__ = [
    "DocumentAdapter",
    "AdapterCapabilities",
    "FindSource",
    "DuplicateKeyError",
]


@dataclass
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_ttl: bool = True
    supports_sparse: bool = True
    supports_where: bool = False
    persistent: bool = True
    id_type: str = "str"
    name: str = "base"


Fetcher = Callable[[List[Tuple[str, int]], int, Optional[int]], Awaitable[List[Dict[str, Any]]]]


class FindSource:
    """
    Lazy result source returned by ``DocumentAdapter.find``.

    ``sort``/``skip``/``limit`` only record options; ``to_list()`` runs the
    query. Skip is always applied before limit.
    """

    __slots__ = ("_fetch", "_sort", "_skip", "_limit")

    def __init__(self, fetch: Fetcher):
        self._fetch = fetch
        self._sort: List[Tuple[str, int]] = []
        self._skip = 0
        self._limit: Optional[int] = None

    def sort(self, spec: Sequence[Tuple[str, int]]) -> FindSource:
        self._sort.extend(spec)
        return self

    def skip(self, n: int) -> FindSource:
        self._skip = n
        return self

    def limit(self, n: Optional[int]) -> FindSource:
        self._limit = n
        return self

    async def to_list(self) -> List[Dict[str, Any]]:
        return await self._fetch(list(self._sort), self._skip, self._limit)


class DocumentAdapter(ABC):
    """
    Abstract document-store adapter interface.

    All backends must implement these methods. Adapters raise their own
    exceptions; the engine wraps them in ``BackendFault``.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    @abstractmethod
    async def connect(self, url: str, **options) -> None:
        """Open the store."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store."""
        ...

    @abstractmethod
    def find(
        self,
        collection: str,
        filter: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
    ) -> FindSource:
        """Lazy query over ``collection``."""
        ...

    @abstractmethod
    async def find_one(
        self,
        collection: str,
        filter: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
    ) -> Optional[Dict[str, Any]]:
        """First matching document, or None."""
        ...

    @abstractmethod
    async def insert(self, collection: str, document: Dict[str, Any]) -> Any:
        """Insert one document. Returns the assigned identifier."""
        ...

    @abstractmethod
    async def update(self, collection: str, identifier: Any, values: Dict[str, Any]) -> bool:
        """Set ``values`` on the document with ``identifier``. True if it existed."""
        ...

    @abstractmethod
    async def remove(self, collection: str, filter: Dict[str, Any], *, multi: bool = False) -> int:
        """Remove matching documents. Returns the count removed."""
        ...

    @abstractmethod
    async def count(self, collection: str, filter: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def create_index(
        self,
        collection: str,
        field: str,
        *,
        unique: bool = False,
        sparse: bool = False,
        expire_after_seconds: Optional[int] = None,
    ) -> bool:
        ...

    @abstractmethod
    async def drop_collection(self, collection: str) -> None:
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...


class DuplicateKeyError(ValueError):
    """A write would violate a unique index."""

    def __init__(self, collection: str, field: str, value: Any):
        self.collection = collection
        self.field = field
        self.value = value
        super().__init__(f"duplicate value {value!r} for unique index '{collection}.{field}'")
