"""
Corvid DB Backends Package - pluggable document-store adapters.

Provides a common adapter interface and implementations for:
- In-memory / NeDB-like embedded store (default)
- MongoDB (via pymongo's async client)
"""

from .base import DocumentAdapter, AdapterCapabilities, FindSource, DuplicateKeyError
from .matcher import MatcherError
from .memory import MemoryAdapter
from .mongo import MongoAdapter

__all__ = [
    "DocumentAdapter",
    "AdapterCapabilities",
    "FindSource",
    "DuplicateKeyError",
    "MatcherError",
    "MemoryAdapter",
    "MongoAdapter",
]
