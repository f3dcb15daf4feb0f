"""
Corvid Database - async document-store layer.

Provides:
- DocumentDatabase: connection manager delegating to backend adapters
- In-memory/NeDB-like store (default), MongoDB adapter
- Module-level accessors (configure_database / get_database / set_database)
- Structured faults (BackendFault, ConnectionFault)
"""

from .engine import (
    DocumentDatabase,
    get_database,
    configure_database,
    set_database,
    reset_database,
)

# Backend adapters
from .backends import (
    DocumentAdapter,
    AdapterCapabilities,
    DuplicateKeyError,
    MemoryAdapter,
    MongoAdapter,
)

# Re-export fault types for convenience
from ..faults.domains import BackendFault, ConnectionFault

__all__ = [
    "DocumentDatabase",
    "BackendFault",
    "ConnectionFault",
    "get_database",
    "configure_database",
    "set_database",
    "reset_database",
    # Backends
    "DocumentAdapter",
    "AdapterCapabilities",
    "DuplicateKeyError",
    "MemoryAdapter",
    "MongoAdapter",
]
