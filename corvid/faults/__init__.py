"""
Corvid faults - structured error taxonomy.

Every error the mapper raises is a ``Fault`` with a stable code, a domain
and a severity:

- SchemaFault: malformed field definition (fatal, at model registration)
- ValidationFault: dirty fields rejected by their type specs (recoverable)
- ReferenceFault: a reference could not be resolved during join
- StateFault: operation invalid for the instance's lifecycle state
- QueryFault: cursor built with invalid arguments
- BackendFault: storage collaborator failure, propagated uninterpreted
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
    ConfigInvalidFault,
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

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Domain faults
    "ConfigFault",
    "ConfigInvalidFault",
    "SchemaFault",
    "ModelNotFoundFault",
    "ValidationFault",
    "ReferenceFault",
    "StateFault",
    "QueryFault",
    "BackendFault",
    "ConnectionFault",

    # Aliases
    "SchemaError",
    "ValidationError",
    "StateError",
    "BackendError",
]
