"""
Corvid models - documents, hooks, cursors and reference resolution.

Public API:
    - Document: base class (Model classmethods + Instance lifecycle)
    - InstanceState: NEW, DIRTY, CLEAN, DELETED
    - hook / HookEvent / HookPipeline: lifecycle hooks
    - QueryCursor: deferred, chainable find
    - ReferenceResolver: join / collapse of reference fields
    - ModelRegistry: process-wide model table
"""

from .document import Document, InstanceState
from .hooks import ALWAYS, HookEvent, HookPipeline, hook
from .options import Options
from .query import QueryCursor
from .references import ReferenceResolver, resolver
from .registry import ModelRegistry

__all__ = [
    "Document",
    "InstanceState",
    "ALWAYS",
    "HookEvent",
    "HookPipeline",
    "hook",
    "Options",
    "QueryCursor",
    "ReferenceResolver",
    "resolver",
    "ModelRegistry",
]
