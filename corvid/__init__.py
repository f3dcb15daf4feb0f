"""
Corvid - async object-document mapper for document stores

Complete integration of:
- Types: immutable, composable TypeSpecs and a shorthand schema compiler
- Models: declarative documents with dirty tracking and lifecycle hooks
- References: join/collapse between identifiers and live instances
- Cursors: deferred, chainable Mongo-style queries
- Backends: in-memory/NeDB-like embedded store and MongoDB
- Faults: structured error handling with fault domains

Usage:
    import corvid
    from corvid import Document, String, Number

    class User(Document):
        name = String
        age = Number.integer().range(0, 130)

    await corvid.connect("memory://")
    ann = await (await User.create(name="Ann", age=30)).save()
    await corvid.close()
"""

__version__ = "0.1.0"

import logging
from typing import Any, Dict, Optional, Union

# ============================================================================
# Configuration
# ============================================================================

from .config import ODMConfig, ConfigLoader, get_settings, configure, reset_settings

# ============================================================================
# Type system
# ============================================================================

from .types import (
    TypeSpec,
    String,
    Number,
    Boolean,
    Date,
    Null,
    Array,
    Option,
    Embedded,
    Ref,
    Constant,
    FieldError,
    compile_schema,
)

# ============================================================================
# Models
# ============================================================================

from .models import (
    Document,
    InstanceState,
    HookEvent,
    HookPipeline,
    hook,
    QueryCursor,
    ReferenceResolver,
    ModelRegistry,
)

# ============================================================================
# Database
# ============================================================================

from .db import (
    DocumentDatabase,
    get_database,
    configure_database,
    set_database,
)

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    ConfigFault,
    SchemaFault,
    ModelNotFoundFault,
    ValidationFault,
    ReferenceFault,
    StateFault,
    QueryFault,
    BackendFault,
    ConnectionFault,
    SchemaError,
    ValidationError,
    StateError,
    BackendError,
)

logger = logging.getLogger("corvid")


async def connect(
    url: Optional[str] = None,
    *,
    config: Union[ODMConfig, Dict[str, Any], None] = None,
) -> DocumentDatabase:
    """
    Open the process-wide database.

    Args:
        url: Database URL (default: ``database_url`` from settings)
        config: Settings to activate first (ODMConfig or a mapping of overrides)

    When ``auto_index`` is on, every registered model's declared indexes
    are created after connecting.
    """
    if config is not None:
        configure(config)
    db = configure_database(url)
    await db.connect()
    if get_settings().auto_index:
        created = await ModelRegistry.ensure_indexes(db)
        if created:
            logger.debug(f"Ensured {len(created)} index(es)")
    return db


async def close() -> None:
    """Close and forget the process-wide database. No-op if none is open."""
    from .db.engine import _default_database

    if _default_database is None:
        return
    try:
        await _default_database.disconnect()
    finally:
        set_database(None)


__all__ = [
    "__version__",
    "connect",
    "close",
    # Config
    "ODMConfig",
    "ConfigLoader",
    "get_settings",
    "configure",
    "reset_settings",
    # Types
    "TypeSpec",
    "String",
    "Number",
    "Boolean",
    "Date",
    "Null",
    "Array",
    "Option",
    "Embedded",
    "Ref",
    "Constant",
    "FieldError",
    "compile_schema",
    # Models
    "Document",
    "InstanceState",
    "HookEvent",
    "HookPipeline",
    "hook",
    "QueryCursor",
    "ReferenceResolver",
    "ModelRegistry",
    # Database
    "DocumentDatabase",
    "get_database",
    "configure_database",
    "set_database",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigFault",
    "SchemaFault",
    "ModelNotFoundFault",
    "ValidationFault",
    "ReferenceFault",
    "StateFault",
    "QueryFault",
    "BackendFault",
    "ConnectionFault",
    "SchemaError",
    "ValidationError",
    "StateError",
    "BackendError",
]
