"""
Corvid schema compiler - raw field definitions to canonical TypeSpecs.

Shorthand forms:
    String / Number.integer() / ...   TypeSpec, used as-is
    str, int, float, bool, datetime   String, Number.integer(), Number, Boolean, Date
    None                              Null
    [T]                               Array(T)
    [T, None]                         T.optional()
    [T1, T2, ...]                     Option(T1, T2, ...)
    {"a": T, ...}                     Embedded({"a": T, ...})
    User (a model class)              Ref(User)
    "text", 5, True, datetime(...)    Constant(literal)

Forward references use ``Ref("Name")``; the name stays unresolved until
first use or ``ModelRegistry.finalize()``.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from typing import Any, Dict

from ..faults.domains import SchemaFault
from .spec import (
    Boolean,
    Constant,
    Date,
    Null,
    Number,
    String,
    Tag,
    TypeSpec,
)

logger = logging.getLogger("corvid.types.compiler")

__all__ = ["compile_schema", "compile_spec", "PYTHON_TYPES"]


PYTHON_TYPES: Dict[type, TypeSpec] = {
    str: String,
    int: Number.integer(),
    float: Number,
    bool: Boolean,
    datetime.datetime: Date,
}

_LITERALS = (str, bool, int, float, datetime.datetime)


def compile_schema(raw: Mapping[str, Any], *, path: str = "") -> Dict[str, TypeSpec]:
    """
    Compile a field-definition mapping into ``{name: TypeSpec}``.

    Raises ``SchemaFault`` naming the first field whose definition is not a
    recognized shorthand.
    """
    if not isinstance(raw, Mapping):
        raise SchemaFault(f"expected a mapping of field definitions, got {type(raw).__name__}", path=path or None)
    compiled: Dict[str, TypeSpec] = {}
    for name, definition in raw.items():
        if not isinstance(name, str) or not name:
            raise SchemaFault(f"field names must be non-empty strings, got {name!r}", path=path or None)
        if name.startswith("$"):
            raise SchemaFault(f"field name {name!r} cannot start with '$'", path=path or None)
        field_path = f"{path}.{name}" if path else name
        compiled[name] = compile_spec(definition, path=field_path)
    return compiled


def compile_spec(definition: Any, *, path: str = "") -> TypeSpec:
    """Canonicalize a single field definition."""
    from ..models.document import Document

    if isinstance(definition, TypeSpec):
        return definition

    if definition is None:
        return Null

    if isinstance(definition, type):
        if issubclass(definition, Document):
            if definition._meta.abstract:
                raise SchemaFault(f"cannot reference abstract model {definition.__name__}", path=path or None)
            return TypeSpec(Tag.REFERENCE, target=definition)
        if definition in PYTHON_TYPES:
            return PYTHON_TYPES[definition]
        raise SchemaFault(f"unsupported type {definition.__name__}", path=path or None)

    if isinstance(definition, (list, tuple)):
        if not definition:
            raise SchemaFault("empty array shorthand", path=path or None)
        if len(definition) == 1:
            return TypeSpec(Tag.ARRAY, element=compile_spec(definition[0], path=f"{path}[]"))
        if len(definition) == 2 and definition[1] is None and definition[0] is not None:
            inner = compile_spec(definition[0], path=path)
            if inner.sealed:
                return inner
            return inner.optional()
        return TypeSpec(
            Tag.OPTION,
            alternatives=tuple(
                compile_spec(alt, path=f"{path}<{i}>") for i, alt in enumerate(definition)
            ),
        )

    if isinstance(definition, Mapping):
        return TypeSpec(Tag.DOCUMENT, fields=compile_schema(definition, path=path))

    if isinstance(definition, _LITERALS):
        return Constant(definition)

    raise SchemaFault(
        f"unrecognized field definition {definition!r} ({type(definition).__name__})",
        path=path or None,
    )
