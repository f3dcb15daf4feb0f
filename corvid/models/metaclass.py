"""
Corvid Document Metaclass - field collection, Meta parsing, hook wiring, registration.
"""

from __future__ import annotations

import datetime
from typing import Any, Callable, Dict, Tuple

from ..faults.domains import SchemaFault
from ..types.compiler import PYTHON_TYPES, compile_schema
from ..types.spec import TypeSpec
from .hooks import ALWAYS, HookPipeline
from .options import Options

__all__ = ["DocumentMeta"]

# Functional ``Document.define`` passes its schema under this key so every
# entry is compiled, callables included.
SCHEMA_KEY = "__corvid_schema__"

_LITERALS = (str, bool, int, float, datetime.datetime)


def _is_field_definition(key: str, value: Any) -> bool:
    if key.startswith("_"):
        return False
    if isinstance(value, (TypeSpec, list, tuple, dict)) or value is None:
        return True
    if isinstance(value, type):
        return value in PYTHON_TYPES or isinstance(value, DocumentMeta)
    if isinstance(value, (staticmethod, classmethod, property)) or callable(value):
        return False
    if hasattr(value, "__get__"):
        return False
    return isinstance(value, _LITERALS)


def _connect_meta_hooks(pipeline: HookPipeline, table: Dict[str, Any]) -> None:
    """Attach ``Meta.hooks``: ``{event: fn | [fn] | {field: fn | [fn]}}``."""
    for event, entry in table.items():
        if isinstance(entry, dict):
            for field, fns in entry.items():
                for fn in fns if isinstance(fns, (list, tuple)) else [fns]:
                    pipeline.connect(event, fn, field=field)
        else:
            for fn in entry if isinstance(entry, (list, tuple)) else [entry]:
                pipeline.connect(event, fn)


class DocumentMeta(type):
    """
    Metaclass for Corvid documents.

    Handles:
    - Field collection (class attributes compiled to TypeSpecs)
    - Field inheritance from parent documents
    - Meta class parsing → Options
    - Hook collection (``@hook`` methods and ``Meta.hooks``)
    - Model registration in ModelRegistry
    """

    def __new__(
        mcs,
        name: str,
        bases: Tuple[type, ...],
        namespace: Dict[str, Any],
        **kwargs,
    ) -> DocumentMeta:
        # Don't process the base Document class itself
        parents = [b for b in bases if isinstance(b, DocumentMeta)]
        if not parents:
            return super().__new__(mcs, name, bases, namespace)

        from .document import Document

        meta_class = namespace.pop("Meta", None)
        schema = namespace.pop(SCHEMA_KEY, None)

        # Inherit fields from parents
        fields: Dict[str, TypeSpec] = {}
        for parent in bases:
            if hasattr(parent, "_fields"):
                fields.update(parent._fields)

        raw: Dict[str, Any] = {}
        for key, value in list(namespace.items()):
            if _is_field_definition(key, value):
                raw[key] = namespace.pop(key)
        if schema is not None:
            raw.update(schema)

        reserved = set(dir(Document)) | {"hooks"}
        for key in raw:
            if key in reserved:
                raise SchemaFault(f"field name '{key}' shadows a Document attribute", path=name)
        fields.update(compile_schema(raw, path=name))

        parent_opts = next((p._meta for p in parents if hasattr(p, "_meta")), None)
        opts = Options(name, meta_class, parent_opts)

        cls = super().__new__(mcs, name, bases, namespace)
        cls._fields = fields
        cls._meta = opts
        cls._db = None

        # Hooks: copy the parent pipeline, drop overridden hook methods
        parent_hooks = next((p.hooks for p in parents if isinstance(getattr(p, "hooks", None), HookPipeline)), None)
        pipeline = parent_hooks.copy(name) if parent_hooks is not None else HookPipeline(name)
        for key in namespace:
            inherited: Callable = getattr(parents[0], key, None)
            for event, _field in getattr(inherited, "__corvid_hooks__", ()):
                pipeline.disconnect(event, inherited)
        for value in namespace.values():
            for event, field in getattr(value, "__corvid_hooks__", ()):
                pipeline.connect(event, value, field=field or ALWAYS)
        _connect_meta_hooks(pipeline, opts.hooks)
        cls.hooks = pipeline

        if not opts.abstract:
            from .registry import ModelRegistry
            ModelRegistry.register(cls)

        return cls
