"""
Corvid Reference Resolver - join and collapse of reference fields.

A reference field holds an identifier (``refOnly``) or an embedded copy of
the target document (``embed`` / ``embedOnly``). ``join`` replaces those
values with live Instances of the target model; ``collapse`` turns them
back into their stored form. Collapsing a joined value always yields the
value that was stored before the join.

Recognized reference fields: ``Ref``, ``Array(Ref)``, and either one
wrapped in ``optional()``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from ..faults.domains import QueryFault, ReferenceFault
from ..types.spec import RefMode, Tag, TypeSpec

if TYPE_CHECKING:
    from .document import Document

logger = logging.getLogger("corvid.models.references")

__all__ = ["ReferenceResolver", "resolver"]


def _strip_optional(spec: TypeSpec) -> TypeSpec:
    if spec.tag == Tag.OPTION:
        concrete = [a for a in spec.alternatives if a.tag != Tag.NULL]
        if len(concrete) == 1:
            return concrete[0]
    return spec


def _join_shape(spec: Optional[TypeSpec]) -> Optional[Tuple[TypeSpec, bool]]:
    """``(reference_spec, is_array)`` for a joinable field, else None."""
    if spec is None:
        return None
    spec = _strip_optional(spec)
    if spec.tag == Tag.REFERENCE:
        return spec, False
    if spec.tag == Tag.ARRAY:
        element = _strip_optional(spec.element)
        if element.tag == Tag.REFERENCE:
            return element, True
    return None


def _reference_for(spec: Optional[TypeSpec], instance: Document) -> Optional[TypeSpec]:
    """The reference spec inside ``spec`` that ``instance`` belongs to."""
    if spec is None:
        return None
    if spec.tag == Tag.REFERENCE:
        return spec
    if spec.tag == Tag.OPTION:
        for alternative in spec.alternatives:
            found = _reference_for(alternative, instance)
            if found is not None and isinstance(instance, found.target):
                return found
    return None


def _container(spec: Optional[TypeSpec], tag: Tag) -> Optional[TypeSpec]:
    """``spec`` itself, or its first alternative, if it carries ``tag``."""
    if spec is None:
        return None
    if spec.tag == tag:
        return spec
    if spec.tag == Tag.OPTION:
        for alternative in spec.alternatives:
            if alternative.tag == tag:
                return alternative
    return None


def _model_name(model: Any) -> str:
    cls = model if isinstance(model, type) else type(model)
    return cls.__name__


class ReferenceResolver:
    """Converts reference fields between stored and joined form."""

    # ── Collapse ─────────────────────────────────────────────────────

    def collapse_value(self, spec: Optional[TypeSpec], value: Any, *, model: Any, field: str) -> Any:
        """Stored form of ``value`` under ``spec`` (recursive)."""
        from .document import Document

        if isinstance(value, Document):
            ref = _reference_for(spec, value)
            if ref is None:
                mode = RefMode.REF_ONLY if value._id is not None else RefMode.EMBED
            else:
                mode = ref.mode
            if mode == RefMode.REF_ONLY:
                if value._id is None:
                    raise ReferenceFault(
                        _model_name(model), field, None,
                        f"referenced {type(value).__name__} has not been saved",
                    )
                return value._id
            return value.to_document()

        if isinstance(value, (list, tuple)):
            array = _container(spec, Tag.ARRAY)
            element = array.element if array is not None else None
            return [
                self.collapse_value(element, item, model=model, field=f"{field}[{i}]")
                for i, item in enumerate(value)
            ]

        if isinstance(value, Mapping):
            embedded = _container(spec, Tag.DOCUMENT)
            fields = embedded.fields if embedded is not None else {}
            return {
                key: self.collapse_value(fields.get(key), item, model=model, field=f"{field}.{key}")
                for key, item in value.items()
            }

        return value

    def collapse(self, instance: Document, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Stored form of ``instance`` (or only ``fields`` of it).

        Raises ``ReferenceFault`` if a refOnly field holds an unsaved instance.
        """
        names = list(instance._data) if fields is None else [f for f in fields if f in instance._data]
        return {
            name: self.collapse_value(instance._fields.get(name), instance._data[name], model=instance, field=name)
            for name in names
        }

    # ── Join ─────────────────────────────────────────────────────────

    def reference_fields(self, model: type) -> List[str]:
        """Names of every joinable field on ``model``, in declaration order."""
        return [name for name, spec in model._fields.items() if _join_shape(spec) is not None]

    async def join(self, instances: Sequence[Document], fields: Optional[Sequence[str]] = None) -> None:
        """
        Expand reference fields of ``instances`` in place.

        refOnly identifiers are fetched with one ``$in`` query per field;
        embedded copies are wrapped without a fetch. Values that are already
        Instances are kept as they are. A missing identifier raises
        ``ReferenceFault`` before any instance is modified.
        """
        if not instances:
            return
        model = type(instances[0])
        if fields:
            for name in fields:
                if _join_shape(model._fields.get(name)) is None:
                    raise QueryFault(model.__name__, "join", f"'{name}' is not a reference field")
            targets = list(fields)
        else:
            targets = self.reference_fields(model)

        pending: List[Tuple[Document, str, Any]] = []
        for name in targets:
            ref, is_array = _join_shape(model._fields[name])
            if ref.mode == RefMode.REF_ONLY:
                pending.extend(await self._join_by_id(model, instances, name, ref, is_array))
            else:
                pending.extend(self._join_embedded(instances, name, ref, is_array))

        # Nothing is written until every targeted field has resolved
        for instance, name, joined in pending:
            instance._data[name] = joined

    async def _join_by_id(
        self,
        model: type,
        instances: Sequence[Document],
        field: str,
        ref: TypeSpec,
        is_array: bool,
    ) -> List[Tuple[Document, str, Any]]:
        from .document import Document

        target = ref.target
        wanted: List[Any] = []
        for instance in instances:
            value = instance._data.get(field)
            items = value if is_array and isinstance(value, (list, tuple)) else [value]
            for item in items:
                if item is None or isinstance(item, Document):
                    continue
                if item not in wanted:
                    wanted.append(item)
        if not wanted:
            return []

        logger.debug(f"Joining {model.__name__}.{field}: fetching {len(wanted)} {target.__name__} document(s)")
        fetched = await target.find({"_id": {"$in": wanted}})
        by_id = {doc._id: doc for doc in fetched}
        # Backends may normalize identifier types (e.g. ObjectId to str)
        by_key = {str(key): doc for key, doc in by_id.items()}

        def lookup(identifier: Any) -> Document:
            found = by_id.get(identifier)
            if found is None:
                found = by_key.get(str(identifier))
            if found is None:
                raise ReferenceFault(model.__name__, field, identifier)
            return found

        resolved: List[Tuple[Document, str, Any]] = []
        for instance in instances:
            value = instance._data.get(field)
            if value is None:
                continue
            if is_array and isinstance(value, (list, tuple)):
                joined = [
                    item if item is None or isinstance(item, Document) else lookup(item)
                    for item in value
                ]
            elif isinstance(value, Document):
                continue
            else:
                joined = lookup(value)
            resolved.append((instance, field, joined))
        return resolved

    def _join_embedded(
        self,
        instances: Sequence[Document],
        field: str,
        ref: TypeSpec,
        is_array: bool,
    ) -> List[Tuple[Document, str, Any]]:
        target = ref.target

        def wrap(item: Any) -> Any:
            if isinstance(item, Mapping):
                return target._from_document(item)
            return item

        resolved: List[Tuple[Document, str, Any]] = []
        for instance in instances:
            value = instance._data.get(field)
            if value is None:
                continue
            if is_array and isinstance(value, (list, tuple)):
                resolved.append((instance, field, [wrap(item) for item in value]))
            else:
                resolved.append((instance, field, wrap(value)))
        return resolved

    # ── Save ─────────────────────────────────────────────────────────

    async def save_refs(self, instance: Document) -> None:
        """
        Save every referenced Instance held by ``instance``.

        refOnly and embed children are written to their own collections. An
        edited embed child that was wrapped from a stored copy without an
        ``_id`` is inserted as a new document.
        embedOnly children are validated only: an embed-only document is a
        one-way copy and never written back.
        """
        from .document import Document

        model = type(instance)
        for name in self.reference_fields(model):
            ref, is_array = _join_shape(model._fields[name])
            value = instance._data.get(name)
            children = value if is_array and isinstance(value, (list, tuple)) else [value]
            for child in children:
                if not isinstance(child, Document):
                    continue
                if ref.mode == RefMode.EMBED_ONLY:
                    child.validate()
                    continue
                if ref.mode == RefMode.EMBED and child._id is None and child._snapshot is not None and child.is_dirty:
                    object.__setattr__(child, "_snapshot", None)
                await child.save()


resolver = ReferenceResolver()
