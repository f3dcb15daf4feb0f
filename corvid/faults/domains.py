"""
Corvid faults - domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- SCHEMA faults
- VALIDATION faults
- REFERENCE faults
- STATE faults
- QUERY faults
- BACKEND faults
"""

from typing import Any, Optional

from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# SCHEMA Faults
# ============================================================================

class SchemaFault(Fault):
    """Malformed field definition, raised when a schema is compiled or resolved."""

    def __init__(self, reason: str, *, path: Optional[str] = None, **kwargs):
        where = f" at '{path}'" if path else ""
        super().__init__(
            code=kwargs.pop("code", "SCHEMA_INVALID"),
            message=f"Invalid schema{where}: {reason}",
            domain=FaultDomain.SCHEMA,
            metadata={"path": path, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.path = path
        self.reason = reason


class ModelNotFoundFault(SchemaFault):
    """A reference names a model that was never registered."""

    def __init__(self, model_name: str, **kwargs):
        super().__init__(
            f"model '{model_name}' is not registered",
            code="MODEL_NOT_FOUND",
            path=kwargs.get("path"),
            metadata={"model": model_name},
        )
        self.model_name = model_name


# ============================================================================
# VALIDATION Faults
# ============================================================================

class ValidationFault(Fault):
    """
    One or more fields failed their type spec.

    ``errors`` maps every failing field to the value it held, ``messages``
    maps the same fields to a human-readable reason.
    """

    def __init__(
        self,
        model: str,
        errors: dict[str, Any],
        messages: Optional[dict[str, str]] = None,
        **kwargs,
    ):
        self.model = model
        self.errors = dict(errors)
        self.messages = dict(messages or {})
        summary = "; ".join(
            f"{name}: {self.messages.get(name, 'invalid value')}" for name in self.errors
        )
        super().__init__(
            code="VALIDATION_FAILED",
            message=f"Validation failed for '{model}': {summary}",
            domain=FaultDomain.VALIDATION,
            metadata={"model": model, "fields": list(self.errors), **kwargs.get("metadata", {})},
        )

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["errors"] = {name: repr(value) for name, value in self.errors.items()}
        base["messages"] = self.messages
        return base


# ============================================================================
# REFERENCE Faults
# ============================================================================

class ReferenceFault(Fault):
    """A reference identifier could not be resolved (or collapsed)."""

    def __init__(self, model: str, field: str, identifier: Any, reason: Optional[str] = None, **kwargs):
        self.model = model
        self.field = field
        self.identifier = identifier
        super().__init__(
            code="REFERENCE_UNRESOLVED",
            message=(
                f"Reference '{model}.{field}' -> {identifier!r}: "
                f"{reason or 'no such document'}"
            ),
            domain=FaultDomain.REFERENCE,
            metadata={"model": model, "field": field, "identifier": repr(identifier), **kwargs.get("metadata", {})},
        )


# ============================================================================
# STATE Faults
# ============================================================================

class StateFault(Fault):
    """Operation is not valid for the instance's current lifecycle state."""

    def __init__(self, model: str, operation: str, state: str, **kwargs):
        self.model = model
        self.operation = operation
        self.state = state
        super().__init__(
            code="INVALID_STATE",
            message=f"Cannot {operation}() a {state} '{model}' instance",
            domain=FaultDomain.STATE,
            metadata={"model": model, "operation": operation, "state": state, **kwargs.get("metadata", {})},
        )


# ============================================================================
# QUERY Faults
# ============================================================================

class QueryFault(Fault):
    """Query cursor was built with invalid arguments."""

    def __init__(self, model: str, operation: str, reason: str, **kwargs):
        super().__init__(
            code="QUERY_INVALID",
            message=f"Query on '{model}' ({operation}) is invalid: {reason}",
            domain=FaultDomain.QUERY,
            metadata={"model": model, "operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# BACKEND Faults
# ============================================================================

class BackendFault(Fault):
    """
    Storage backend failure.

    The backend's own exception is kept on ``original`` (and chained as
    ``__cause__``) without interpretation.
    """

    def __init__(
        self,
        operation: str,
        collection: str,
        reason: str,
        *,
        original: Optional[BaseException] = None,
        code: str = "BACKEND_FAILED",
        severity: Optional[Severity] = None,
        **kwargs,
    ):
        self.operation = operation
        self.collection = collection
        self.original = original
        super().__init__(
            code=code,
            message=f"Backend {operation} on '{collection}' failed: {reason}",
            domain=FaultDomain.BACKEND,
            severity=severity,
            metadata={"operation": operation, "collection": collection, "reason": reason, **kwargs.get("metadata", {})},
        )


class ConnectionFault(BackendFault):
    """Backend connection could not be established or closed."""

    def __init__(self, url: str, reason: str, **kwargs):
        self.url = url
        super().__init__(
            "connect",
            "<connection>",
            f"{url}: {reason}",
            original=kwargs.get("original"),
            code="BACKEND_CONNECTION_FAILED",
            severity=Severity.FATAL,
            metadata={"url": url},
        )


# ── Backward-compatible aliases ──────────────────────────────────────────────
SchemaError = SchemaFault
ValidationError = ValidationFault
StateError = StateFault
BackendError = BackendFault
