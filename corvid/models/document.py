"""
Corvid Document - the Model (class side) and Instance (object side).

Usage:
    from corvid import Document, String, Number, hook

    class User(Document):
        name = String.length(1, 80)
        age = Number.integer().range(0, 130)

        class Meta:
            indexes = {"name": {"unique": True}}

        @hook("presave")
        def touch(self):
            self.updated = datetime.datetime.now()

    user = await User.create(name="Ann", age=30)
    await user.save()
    adults = await User.find({"age": {"$gte": 18}}).sort("name").limit(10)
    user.age = 31                   # marks 'age' dirty
    await user.save()               # validates and writes only 'age'
    await user.delete()
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Type, TYPE_CHECKING

from ..faults.domains import QueryFault, ReferenceFault, StateFault, ValidationFault
from ..types.spec import Ref, Tag, TypeSpec
from ..types.validators import FieldError
from .hooks import HookEvent, HookPipeline
from .metaclass import SCHEMA_KEY, DocumentMeta
from .options import Options
from .query import QueryCursor
from .references import resolver
from .registry import ModelRegistry

if TYPE_CHECKING:
    from ..db.engine import DocumentDatabase

logger = logging.getLogger("corvid.models.document")

__all__ = ["Document", "InstanceState"]


class InstanceState(str, Enum):
    NEW = "new"
    DIRTY = "dirty"
    CLEAN = "clean"
    DELETED = "deleted"


class Document(metaclass=DocumentMeta):
    """
    Base class for Corvid documents.

    Field values live in ``_data``; assignment through attributes or items
    marks the field dirty. ``_id`` is absent until the first successful
    save unless supplied explicitly.
    """

    _fields: Dict[str, TypeSpec] = {}
    _meta: Options
    _db: Optional[DocumentDatabase] = None
    hooks: HookPipeline

    def __init__(self, data: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        values: Dict[str, Any] = dict(data or {})
        values.update(kwargs)
        self._init_state()
        for key, value in values.items():
            self._data[key] = value
        for name, spec in self._fields.items():
            if name not in self._data and spec.has_default():
                self._data[name] = spec.get_default()

    def _init_state(self) -> None:
        object.__setattr__(self, "_data", {})
        object.__setattr__(self, "_dirty", set())
        object.__setattr__(self, "_snapshot", None)
        object.__setattr__(self, "_deleted", False)
        object.__setattr__(self, "_lock", asyncio.Lock())

    @classmethod
    def _from_document(cls, doc: Mapping[str, Any]) -> Document:
        """Wrap a raw backend document as a clean instance."""
        instance = cls.__new__(cls)
        instance._init_state()
        instance._data.update(doc)
        object.__setattr__(instance, "_snapshot", copy.deepcopy(dict(doc)))
        return instance

    # ── Field access ─────────────────────────────────────────────────

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal attribute lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        data = self.__dict__.get("_data")
        if data is not None:
            if name in data:
                return data[name]
            if name in type(self)._fields:
                return None
        raise AttributeError(f"'{type(self).__name__}' has no field '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "_id":
            self._data["_id"] = value
        elif name.startswith("_"):
            object.__setattr__(self, name, value)
        elif name in type(self)._fields or not hasattr(type(self), name):
            self._data[name] = value
            self._dirty.add(name)
        else:
            object.__setattr__(self, name, value)

    def __getitem__(self, name: str) -> Any:
        if name in self._data:
            return self._data[name]
        if name in self._fields:
            return None
        raise KeyError(name)

    def __setitem__(self, name: str, value: Any) -> None:
        if name == "_id":
            self._data["_id"] = value
            return
        self._data[name] = value
        self._dirty.add(name)

    def __contains__(self, name: str) -> bool:
        return name in self._data

    @property
    def _id(self) -> Any:
        return self._data.get("_id")

    @property
    def id(self) -> Any:
        """Alias for ``_id``."""
        return self._data.get("_id")

    # ── State ────────────────────────────────────────────────────────

    @property
    def dirty_fields(self) -> List[str]:
        """
        Fields the next save() would validate and write.

        Declared fields come first in declaration order, then any other keys.
        """
        if self._snapshot is None:
            candidates = set(self._fields) | set(self._data)
        else:
            candidates = set(self._dirty)
            for name, value in self._data.items():
                if name in candidates:
                    continue
                try:
                    current = resolver.collapse_value(self._fields.get(name), value, model=self, field=name)
                except ReferenceFault:
                    candidates.add(name)
                    continue
                if name not in self._snapshot or current != self._snapshot[name]:
                    candidates.add(name)
        candidates.discard("_id")
        ordered = [name for name in self._fields if name in candidates]
        ordered.extend(name for name in self._data if name in candidates and name not in self._fields)
        return ordered

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_fields)

    @property
    def state(self) -> InstanceState:
        if self._deleted:
            return InstanceState.DELETED
        if self._snapshot is None:
            return InstanceState.NEW
        return InstanceState.DIRTY if self.dirty_fields else InstanceState.CLEAN

    def _strictness(self) -> bool:
        if self._meta.strict is not None:
            return self._meta.strict
        from ..config import get_settings
        return get_settings().strict_documents

    # ── Validation ───────────────────────────────────────────────────

    def _validate_fields(self, names: Sequence[str]) -> None:
        """Validate ``names``, collecting every failure into one ValidationFault."""
        strict = self._strictness()
        errors: Dict[str, Any] = {}
        messages: Dict[str, str] = {}
        normalized: Dict[str, Any] = {}
        for name in names:
            value = self._data.get(name)
            spec = self._fields.get(name)
            if spec is None:
                if strict:
                    errors[name] = value
                    messages[name] = "unknown field"
                continue
            try:
                normalized[name] = spec.validate(value, strict=strict)
            except FieldError as exc:
                errors[name] = value
                messages[name] = str(exc)
        if errors:
            raise ValidationFault(type(self).__name__, errors, messages)
        for name, value in normalized.items():
            if name in self._data:
                self._data[name] = value

    def validate(self) -> None:
        """Validate every field without writing. Raises ``ValidationFault``."""
        self._validate_fields(list(self._fields) + [n for n in self._data if n not in self._fields and n != "_id"])

    # ── Lifecycle ────────────────────────────────────────────────────

    async def save(self) -> Document:
        """
        Validate dirty fields, run hooks, and insert or update.

        Steps: prevalidate hooks, validation (all failures collected),
        postvalidate and presave hooks, collapse joined references, write,
        then postsave hooks. A CLEAN instance is returned untouched.
        """
        async with self._lock:
            return await self._save()

    async def _save(self) -> Document:
        cls = type(self)
        current = self.state
        if current == InstanceState.DELETED:
            raise StateFault(cls.__name__, "save", current.value)
        if current == InstanceState.CLEAN:
            logger.debug(f"{cls.__name__}({self._id!r}): nothing to save")
            return self

        await cls.hooks.run(HookEvent.PREVALIDATE, self, self.dirty_fields)
        fields = self.dirty_fields
        self._validate_fields(fields)
        await cls.hooks.run(HookEvent.POSTVALIDATE, self, fields)
        await cls.hooks.run(HookEvent.PRESAVE, self, fields)
        fields = self.dirty_fields

        db = cls._get_db()
        collection = cls.collection_name()
        if self._snapshot is None:
            document = resolver.collapse(self)
            if document.get("_id") is None:
                document.pop("_id", None)
            new_id = await db.insert(collection, document)
            self._data["_id"] = new_id
            object.__setattr__(self, "_snapshot", copy.deepcopy({**document, "_id": new_id}))
            logger.debug(f"Inserted {cls.__name__}({new_id!r}) into '{collection}'")
        else:
            payload = resolver.collapse(self, fields)
            if payload and not await db.update(collection, self._id, payload):
                logger.warning(f"{cls.__name__}({self._id!r}) was not found in '{collection}' during update")
            self._snapshot.update(copy.deepcopy(payload))
            logger.debug(f"Updated {cls.__name__}({self._id!r}) fields {sorted(payload)}")
        self._dirty.clear()

        await cls.hooks.run(HookEvent.POSTSAVE, self, fields)
        return self

    async def delete(self) -> int:
        """Remove this document. Returns the number removed (0 or 1)."""
        async with self._lock:
            cls = type(self)
            current = self.state
            if current in (InstanceState.DELETED, InstanceState.NEW):
                raise StateFault(cls.__name__, "delete", current.value)
            scope = list(cls._fields)
            await cls.hooks.run(HookEvent.PREDELETE, self, scope)
            removed = await cls._get_db().remove(cls.collection_name(), {"_id": self._id}, multi=False)
            object.__setattr__(self, "_deleted", True)
            await cls.hooks.run(HookEvent.POSTDELETE, self, scope)
            return removed

    async def join(self, *fields: str) -> Document:
        """Expand reference fields in place (all of them when none are named)."""
        async with self._lock:
            if self._deleted:
                raise StateFault(type(self).__name__, "join", InstanceState.DELETED.value)
            await resolver.join([self], fields or None)
            return self

    async def save_refs(self) -> Document:
        """Save every referenced instance held by this one."""
        async with self._lock:
            await resolver.save_refs(self)
            return self

    async def save_all(self) -> Document:
        """``save_refs()`` then ``save()``: persists a whole document graph."""
        await self.save_refs()
        return await self.save()

    def to_document(self) -> Dict[str, Any]:
        """Plain dict with joined references collapsed to identifiers."""
        document = resolver.collapse(self)
        if document.get("_id") is None:
            document.pop("_id", None)
        return document

    # ── Model operations ─────────────────────────────────────────────

    @classmethod
    def define(
        cls,
        name: str,
        schema: Mapping[str, Any],
        *,
        hooks: Optional[Dict[str, Any]] = None,
        indexes: Optional[Any] = None,
        collection: Optional[str] = None,
        strict: Optional[bool] = None,
        abstract: bool = False,
    ) -> Type[Document]:
        """Build a model from a schema mapping instead of a class statement."""
        attrs: Dict[str, Any] = {"abstract": abstract}
        if hooks is not None:
            attrs["hooks"] = hooks
        if indexes is not None:
            attrs["indexes"] = indexes
        if collection is not None:
            attrs["collection"] = collection
        if strict is not None:
            attrs["strict"] = strict
        namespace = {
            SCHEMA_KEY: dict(schema),
            "Meta": type("Meta", (), attrs),
            "__module__": cls.__module__,
        }
        return type(cls)(name, (cls,), namespace)

    @classmethod
    def _get_db(cls) -> DocumentDatabase:
        db = cls._db or ModelRegistry.get_database()
        if db is None:
            from ..db.engine import get_database
            db = get_database()
        return db

    @classmethod
    def collection_name(cls) -> str:
        return cls._meta.collection

    @classmethod
    def embedded_spec(cls) -> TypeSpec:
        """This model's fields as an embedded-document spec."""
        return TypeSpec(Tag.DOCUMENT, fields=cls._fields, strict=cls._meta.strict)

    @classmethod
    def embed(cls) -> TypeSpec:
        return Ref(cls).embed()

    @classmethod
    def embed_only(cls) -> TypeSpec:
        return Ref(cls).embed_only()

    @classmethod
    async def create(cls, data: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Document:
        """
        Build a NEW instance: supplied keys copied verbatim, declared
        defaults filled in, then ``oncreate`` hooks. Nothing is validated
        or written until ``save()``.
        """
        instance = cls(data, **kwargs)
        await cls.hooks.run(HookEvent.ONCREATE, instance, list(cls._fields))
        return instance

    @classmethod
    def find(cls, filter: Optional[Dict[str, Any]] = None, projection: Optional[Dict[str, Any]] = None) -> QueryCursor:
        return QueryCursor(cls, filter, projection)

    @classmethod
    def find_one(cls, filter: Optional[Dict[str, Any]] = None, projection: Optional[Dict[str, Any]] = None) -> QueryCursor:
        return QueryCursor(cls, filter, projection, single=True)

    @classmethod
    def find_by_id(cls, identifier: Any) -> QueryCursor:
        return QueryCursor(cls, {"_id": identifier}, single=True)

    @classmethod
    async def count(cls, filter: Optional[Dict[str, Any]] = None) -> int:
        return await cls._get_db().count(cls.collection_name(), filter or {})

    @classmethod
    async def delete_one(cls, filter: Dict[str, Any]) -> int:
        """Remove the first match without running hooks. Returns 0 or 1."""
        return await cls._get_db().remove(cls.collection_name(), filter or {}, multi=False)

    @classmethod
    async def delete_many(cls, filter: Optional[Dict[str, Any]] = None) -> int:
        """Remove every match without running hooks."""
        return await cls._get_db().remove(cls.collection_name(), filter or {}, multi=True)

    @classmethod
    async def find_one_and_update(
        cls,
        filter: Dict[str, Any],
        values: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> Optional[Document]:
        """
        Load the first match, assign ``values`` and save it through the full
        hook pipeline. With ``upsert`` a missing document is created from the
        filter's equality terms plus ``values``.
        """
        if any(str(key).startswith("$") for key in values):
            raise QueryFault(cls.__name__, "find_one_and_update", "update operators are not supported; pass field values")
        instance = await cls.find_one(filter)
        if instance is None:
            if not upsert:
                return None
            seed = {
                key: value for key, value in (filter or {}).items()
                if not key.startswith("$") and not isinstance(value, Mapping)
            }
            seed.update(values)
            instance = await cls.create(seed)
        else:
            for key, value in values.items():
                instance[key] = value
        return await instance.save()

    @classmethod
    async def find_one_and_delete(cls, filter: Dict[str, Any]) -> int:
        """Load the first match and delete it through the hook pipeline."""
        instance = await cls.find_one(filter)
        if instance is None:
            return 0
        return await instance.delete()

    @classmethod
    async def clear_collection(cls) -> int:
        """Remove every document in the collection. Returns the count removed."""
        return await cls._get_db().remove(cls.collection_name(), {}, multi=True)

    @classmethod
    async def create_index(
        cls,
        field: str,
        *,
        unique: bool = False,
        sparse: bool = False,
        expire_after_seconds: Optional[int] = None,
    ) -> bool:
        return await cls._get_db().create_index(
            cls.collection_name(),
            field,
            unique=unique,
            sparse=sparse,
            expire_after_seconds=expire_after_seconds,
        )

    @classmethod
    async def ensure_indexes(cls, db: Optional[DocumentDatabase] = None) -> List[str]:
        """Create every index declared in ``Meta.indexes``. Returns the field names."""
        target = db or cls._get_db()
        created: List[str] = []
        for field, options in cls._meta.indexes.items():
            await target.create_index(
                cls.collection_name(),
                field,
                unique=bool(options.get("unique", False)),
                sparse=bool(options.get("sparse", False)),
                expire_after_seconds=options.get("expire_after_seconds"),
            )
            created.append(field)
        return created

    # ── Dunder ───────────────────────────────────────────────────────

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Document) or type(self) is not type(other):
            return NotImplemented
        if self._id is None or other._id is None:
            return self is other
        return self._id == other._id

    def __hash__(self) -> int:
        if self._id is None:
            return id(self)
        return hash((type(self).__name__, self._id))

    def __repr__(self) -> str:
        return f"<{type(self).__name__}: _id={self._id!r} ({self.state.value})>"
