"""
Corvid DB Backend - embedded in-memory store (NeDB-like).

URLs:
    memory://                 pure in-memory, nothing persisted
    nedb:///path/to/dir       one ``<collection>.db`` JSON-lines file per collection

Datafiles hold one document per line; datetimes are written as
``{"$$date": "<iso-8601>"}`` (epoch milliseconds are also accepted when
reading). Every write rewrites the collection's file through a temporary
file in a worker thread, off the event loop.
"""

from __future__ import annotations

import asyncio
import copy
import datetime
import json
import logging
import os
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .base import AdapterCapabilities, DocumentAdapter, DuplicateKeyError, FindSource
from .matcher import MISSING, lookup, matches, project, sort_documents, values_equal

logger = logging.getLogger("corvid.db.backends.memory")

__all__ = ["MemoryAdapter", "generate_id"]

_ID_ALPHABET = string.ascii_letters + string.digits


def generate_id(length: int = 16) -> str:
    """Random alphanumeric identifier."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def _encode(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        return {"$$date": value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"$$date"}:
            raw = value["$$date"]
            if isinstance(raw, (int, float)):
                return datetime.datetime.fromtimestamp(raw / 1000, tz=datetime.timezone.utc)
            return datetime.datetime.fromisoformat(raw)
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


@dataclass
class _Index:
    field: str
    unique: bool = False
    sparse: bool = False
    expire_after_seconds: Optional[int] = None


class _Collection:
    """Documents of one collection in insertion order, plus its indexes."""

    __slots__ = ("name", "docs", "indexes", "lock")

    def __init__(self, name: str):
        self.name = name
        self.docs: Dict[Any, Dict[str, Any]] = {}
        self.indexes: Dict[str, _Index] = {}
        self.lock = asyncio.Lock()


class MemoryAdapter(DocumentAdapter):
    """
    NeDB-like embedded document store.

    Unique and sparse indexes are enforced on insert and update; TTL
    indexes remove expired documents whenever the collection is read.
    """

    capabilities = AdapterCapabilities(
        supports_ttl=True,
        supports_sparse=True,
        supports_where=True,
        persistent=False,
        id_type="str",
        name="memory",
    )

    def __init__(self):
        self._collections: Dict[str, _Collection] = {}
        self._directory: Optional[str] = None
        self._connected = False

    async def connect(self, url: str, **options) -> None:
        if url.startswith("nedb://"):
            path = url[len("nedb://"):]
            self._directory = path or None
        elif url.startswith("memory://"):
            self._directory = None
        else:
            raise ValueError(f"MemoryAdapter cannot open {url!r}")
        if self._directory:
            await asyncio.to_thread(os.makedirs, self._directory, exist_ok=True)
            self.capabilities = AdapterCapabilities(
                supports_ttl=True,
                supports_sparse=True,
                supports_where=True,
                persistent=True,
                id_type="str",
                name="nedb",
            )
        self._connected = True
        logger.info(f"Memory store opened ({self._directory or 'in-memory'})")

    async def disconnect(self) -> None:
        if self._directory is None:
            logger.warning("In-memory store has no connection to close; data is kept until the process exits")
            return
        self._collections.clear()
        self._connected = False
        logger.info(f"Memory store closed ({self._directory})")

    @property
    def is_connected(self) -> bool:
        return self._connected

    # ── Storage ──────────────────────────────────────────────────────

    def _path(self, name: str) -> str:
        return os.path.join(self._directory, f"{name}.db")

    @staticmethod
    def _read_file(path: str) -> List[Dict[str, Any]]:
        if not os.path.exists(path):
            return []
        docs = []
        with open(path, "r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    docs.append(_decode(json.loads(line)))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupt line {lineno} in {path}")
        return docs

    @staticmethod
    def _write_file(path: str, docs: List[Dict[str, Any]]) -> None:
        tmp = f"{path}~"
        with open(tmp, "w", encoding="utf-8") as fh:
            for doc in docs:
                fh.write(json.dumps(_encode(doc)))
                fh.write("\n")
        os.replace(tmp, path)

    async def _collection(self, name: str) -> _Collection:
        coll = self._collections.get(name)
        if coll is None:
            coll = _Collection(name)
            if self._directory:
                for doc in await asyncio.to_thread(self._read_file, self._path(name)):
                    coll.docs[doc["_id"]] = doc
                logger.debug(f"Loaded {len(coll.docs)} document(s) from {self._path(name)}")
            self._collections[name] = coll
        return coll

    async def _persist(self, coll: _Collection) -> None:
        if self._directory:
            await asyncio.to_thread(self._write_file, self._path(coll.name), list(coll.docs.values()))

    async def _expire(self, coll: _Collection) -> None:
        ttl = [index for index in coll.indexes.values() if index.expire_after_seconds is not None]
        if not ttl:
            return
        expired = []
        for key, doc in coll.docs.items():
            for index in ttl:
                value = doc.get(index.field)
                if not isinstance(value, datetime.datetime):
                    continue
                now = datetime.datetime.now(value.tzinfo)
                if value + datetime.timedelta(seconds=index.expire_after_seconds) <= now:
                    expired.append(key)
                    break
        if expired:
            for key in expired:
                del coll.docs[key]
            logger.debug(f"Expired {len(expired)} document(s) from '{coll.name}'")
            await self._persist(coll)

    def _check_unique(self, coll: _Collection, doc: Dict[str, Any], own_id: Any = MISSING) -> None:
        for index in coll.indexes.values():
            if not index.unique:
                continue
            value = lookup(doc, index.field)[0]
            if index.sparse and value is MISSING:
                continue
            value = None if value is MISSING else value
            for key, other in coll.docs.items():
                if key == own_id:
                    continue
                existing = lookup(other, index.field)[0]
                if index.sparse and existing is MISSING:
                    continue
                existing = None if existing is MISSING else existing
                if values_equal(existing, value):
                    raise DuplicateKeyError(coll.name, index.field, value)

    async def _matching(self, name: str, filter: Dict[str, Any]) -> Tuple[_Collection, List[Dict[str, Any]]]:
        coll = await self._collection(name)
        await self._expire(coll)
        return coll, [doc for doc in coll.docs.values() if matches(doc, filter)]

    # ── Operations ───────────────────────────────────────────────────

    def find(
        self,
        collection: str,
        filter: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
    ) -> FindSource:
        async def fetch(sort: List[Tuple[str, int]], skip: int, limit: Optional[int]) -> List[Dict[str, Any]]:
            _, docs = await self._matching(collection, filter)
            if sort:
                docs = sort_documents(docs, sort)
            docs = docs[skip:]
            if limit:
                docs = docs[:limit]
            return [project(doc, projection) for doc in docs]

        return FindSource(fetch)

    async def find_one(
        self,
        collection: str,
        filter: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
    ) -> Optional[Dict[str, Any]]:
        _, docs = await self._matching(collection, filter)
        return project(docs[0], projection) if docs else None

    async def insert(self, collection: str, document: Dict[str, Any]) -> Any:
        coll = await self._collection(collection)
        async with coll.lock:
            doc = copy.deepcopy(document)
            if doc.get("_id") is None:
                doc["_id"] = generate_id()
                while doc["_id"] in coll.docs:
                    doc["_id"] = generate_id()
            elif doc["_id"] in coll.docs:
                raise DuplicateKeyError(collection, "_id", doc["_id"])
            self._check_unique(coll, doc)
            coll.docs[doc["_id"]] = doc
            await self._persist(coll)
        return doc["_id"]

    async def update(self, collection: str, identifier: Any, values: Dict[str, Any]) -> bool:
        coll = await self._collection(collection)
        async with coll.lock:
            current = coll.docs.get(identifier)
            if current is None:
                return False
            updated = copy.deepcopy(current)
            updated.update(copy.deepcopy(values))
            updated["_id"] = identifier
            self._check_unique(coll, updated, own_id=identifier)
            coll.docs[identifier] = updated
            await self._persist(coll)
        return True

    async def remove(self, collection: str, filter: Dict[str, Any], *, multi: bool = False) -> int:
        coll, docs = await self._matching(collection, filter)
        if not multi:
            docs = docs[:1]
        if not docs:
            return 0
        async with coll.lock:
            for doc in docs:
                coll.docs.pop(doc["_id"], None)
            await self._persist(coll)
        return len(docs)

    async def count(self, collection: str, filter: Dict[str, Any]) -> int:
        _, docs = await self._matching(collection, filter)
        return len(docs)

    async def create_index(
        self,
        collection: str,
        field: str,
        *,
        unique: bool = False,
        sparse: bool = False,
        expire_after_seconds: Optional[int] = None,
    ) -> bool:
        coll = await self._collection(collection)
        index = _Index(field, unique, sparse, expire_after_seconds)
        if unique:
            seen: List[Any] = []
            for doc in coll.docs.values():
                value = lookup(doc, field)[0]
                if sparse and value is MISSING:
                    continue
                value = None if value is MISSING else value
                if any(values_equal(value, other) for other in seen):
                    raise DuplicateKeyError(collection, field, value)
                seen.append(value)
        coll.indexes[field] = index
        logger.debug(f"Index on '{collection}.{field}' (unique={unique}, sparse={sparse}, ttl={expire_after_seconds})")
        return True

    async def drop_collection(self, collection: str) -> None:
        self._collections.pop(collection, None)
        if self._directory:
            path = self._path(collection)
            if os.path.exists(path):
                await asyncio.to_thread(os.remove, path)
