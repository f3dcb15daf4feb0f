"""
Corvid Model Registry - process-wide table of model name to model class.

Tracks every concrete Document subclass, resolves forward ``Ref("Name")``
placeholders, creates declared indexes, and holds the database the models
talk to.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Tuple, Type, TYPE_CHECKING

from ..faults.domains import ModelNotFoundFault, SchemaFault
from ..types.spec import Tag, TypeSpec

if TYPE_CHECKING:
    from ..db.engine import DocumentDatabase
    from .document import Document

logger = logging.getLogger("corvid.models.registry")

__all__ = ["ModelRegistry"]


def _walk_references(spec: TypeSpec, path: str) -> Iterator[Tuple[str, TypeSpec]]:
    """Yield (path, spec) for every reference nested inside ``spec``."""
    if spec.tag == Tag.REFERENCE:
        yield path, spec
    elif spec.tag == Tag.ARRAY:
        yield from _walk_references(spec.element, f"{path}[]")
    elif spec.tag == Tag.OPTION:
        for alternative in spec.alternatives:
            yield from _walk_references(alternative, path)
    elif spec.tag == Tag.DOCUMENT:
        for name, child in spec.fields.items():
            yield from _walk_references(child, f"{path}.{name}")


class ModelRegistry:
    """
    Global registry for all Document subclasses.

    Registration happens in the Document metaclass; forward references are
    resolved by name on first use or all at once by ``finalize()``.
    """

    _models: Dict[str, Type[Document]] = {}
    _db: Optional[DocumentDatabase] = None

    @classmethod
    def register(cls, model_cls: Type[Document]) -> None:
        """Register a model class."""
        name = model_cls.__name__
        if name in cls._models and cls._models[name] is not model_cls:
            logger.warning(f"Model '{name}' redefined; the newer definition replaces the old one")
        cls._models[name] = model_cls
        logger.debug(f"Registered model '{name}' -> collection '{model_cls._meta.collection}'")

    @classmethod
    def get(cls, name: str) -> Optional[Type[Document]]:
        """Get model class by name."""
        return cls._models.get(name)

    @classmethod
    def resolve(cls, name: str) -> Type[Document]:
        """Get model class by name, raising ``ModelNotFoundFault`` if unknown."""
        model_cls = cls._models.get(name)
        if model_cls is None:
            raise ModelNotFoundFault(name)
        return model_cls

    @classmethod
    def all_models(cls) -> Dict[str, Type[Document]]:
        """Get all registered models."""
        return dict(cls._models)

    @classmethod
    def finalize(cls) -> None:
        """
        Resolve every reference placeholder against the registry.

        Raises one ``SchemaFault`` listing every reference whose target was
        never registered.
        """
        missing: List[str] = []
        for model_name, model_cls in cls._models.items():
            for field_name, spec in model_cls._fields.items():
                for path, ref in _walk_references(spec, f"{model_name}.{field_name}"):
                    if ref.target_name not in cls._models:
                        missing.append(f"{path} -> {ref.target_name}")
        if missing:
            raise SchemaFault(
                "unresolved model references: " + ", ".join(missing),
                code="UNRESOLVED_REFERENCES",
            )

    @classmethod
    def set_database(cls, db: Optional[DocumentDatabase]) -> None:
        """Set the database every model uses unless it has its own."""
        cls._db = db

    @classmethod
    def get_database(cls) -> Optional[DocumentDatabase]:
        return cls._db

    @classmethod
    async def ensure_indexes(cls, db: Optional[DocumentDatabase] = None) -> List[Tuple[str, str]]:
        """Create every declared index. Returns (collection, field) pairs."""
        created: List[Tuple[str, str]] = []
        for model_cls in cls._models.values():
            for field_name in await model_cls.ensure_indexes(db):
                created.append((model_cls.collection_name(), field_name))
        return created

    @classmethod
    def reset(cls) -> None:
        """Clear registry (for testing)."""
        cls._models.clear()
        cls._db = None
