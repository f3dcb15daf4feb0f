"""
Corvid Model Options - parsed from inner Meta class.

    class Session(Document):
        token = String
        created = Date

        class Meta:
            collection = "sessions"
            indexes = {"token": {"unique": True}, "created": {"expire_after_seconds": 3600}}
            strict = True
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..faults.domains import SchemaFault

__all__ = ["Options", "INDEX_OPTIONS"]


INDEX_OPTIONS = ("unique", "sparse", "expire_after_seconds")

_INDEX_ALIASES = {
    "expireAfterSeconds": "expire_after_seconds",
    "ttl": "expire_after_seconds",
}


def _normalize_indexes(model_name: str, raw: Any) -> Dict[str, Dict[str, Any]]:
    """Accept ``{field: {options}}`` or a plain list of field names."""
    if raw is None:
        return {}
    if isinstance(raw, (list, tuple)):
        raw = {name: {} for name in raw}
    if not isinstance(raw, dict):
        raise SchemaFault(
            f"Meta.indexes must be a dict or list, got {type(raw).__name__}",
            path=model_name,
        )
    indexes: Dict[str, Dict[str, Any]] = {}
    for field, options in raw.items():
        options = dict(options or {})
        normalized: Dict[str, Any] = {}
        for key, value in options.items():
            key = _INDEX_ALIASES.get(key, key)
            if key not in INDEX_OPTIONS:
                raise SchemaFault(
                    f"unknown index option {key!r} for field '{field}'",
                    path=f"{model_name}.Meta.indexes",
                )
            normalized[key] = value
        indexes[field] = normalized
    return indexes


class Options:
    """
    Parsed model options from inner Meta class.

    Attributes:
        collection: Backend collection name (default: lower-cased model name)
        indexes: ``{field: {unique, sparse, expire_after_seconds}}``
        hooks: Raw hook table, attached to the model's HookPipeline
        strict: Reject unknown top-level fields (None: use ODMConfig)
        abstract: Abstract models are not registered and have no collection
    """

    __slots__ = ("model_name", "collection", "indexes", "hooks", "strict", "abstract")

    def __init__(self, model_name: str, meta: Optional[type] = None, parent: Optional[Options] = None):
        self.model_name = model_name
        self.collection: str = getattr(meta, "collection", None) or model_name.lower()

        # Indexes and strictness are inherited, collection names are not
        inherited_indexes = dict(parent.indexes) if parent is not None else {}
        inherited_indexes.update(_normalize_indexes(model_name, getattr(meta, "indexes", None)))
        self.indexes = inherited_indexes

        self.hooks: Dict[str, Any] = dict(getattr(meta, "hooks", None) or {})
        default_strict = parent.strict if parent is not None else None
        self.strict: Optional[bool] = getattr(meta, "strict", default_strict)
        self.abstract: bool = bool(getattr(meta, "abstract", False))

    def __repr__(self) -> str:
        return f"<Options: {self.model_name} collection={self.collection!r}>"
