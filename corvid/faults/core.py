"""
Corvid faults - the base Fault type, its domains and severities.

Each layer of the mapper raises faults from its own domain (schema
compilation, validation, reference resolution, instance state, query
building, backend access, configuration), so callers can branch on
``fault.domain`` or the stable ``fault.code`` instead of message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """How bad a fault is; FATAL marks programmer or schema errors."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"     # the failed call can be fixed and repeated
    FATAL = "fatal"     # fix the model definition or configuration


class FaultDomain:
    """
    Named layer of the mapper a fault belongs to.

    Compares equal to another domain of the same name and to its plain
    name string, so ``fault.domain == "query"`` works.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain({self.name!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return other.name == self.name
        return self.name == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Settings files, environment and overrides")
FaultDomain.SCHEMA = FaultDomain("schema", "Malformed field definitions")
FaultDomain.VALIDATION = FaultDomain("validation", "Field values rejected by their type specs")
FaultDomain.REFERENCE = FaultDomain("reference", "Unresolvable document references")
FaultDomain.STATE = FaultDomain("state", "Operations invalid for an instance's lifecycle state")
FaultDomain.QUERY = FaultDomain("query", "Malformed query cursors")
FaultDomain.BACKEND = FaultDomain("backend", "Storage backend failures")


# Severity and retry behaviour when a fault does not set its own
DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.SCHEMA: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.VALIDATION: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.REFERENCE: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.STATE: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.QUERY: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.BACKEND: {"severity": Severity.ERROR, "retryable": False},
}

_FALLBACK = {"severity": Severity.ERROR, "retryable": False}


# ============================================================================
# Fault
# ============================================================================

class Fault(Exception):
    """
    Structured mapper error.

    Attributes:
        code: Stable identifier such as ``"VALIDATION_FAILED"``
        message: Human-readable summary
        domain: ``FaultDomain`` of the layer that raised it
        severity: Defaults from the domain when not given
        retryable: Whether repeating the same call may succeed
        metadata: Extra context (model, field, operation, ...)

    Subclasses may set ``code``, ``message`` or ``domain`` as class
    attributes instead of passing them:

        class ReadOnlyFault(Fault):
            code = "READ_ONLY"
            message = "collection is read-only"
            domain = FaultDomain.STATE
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        cls = type(self)
        self.code = getattr(cls, "code", None) if code is None else code
        self.message = getattr(cls, "message", None) if message is None else message
        self.domain = getattr(cls, "domain", None) if domain is None else domain
        missing = [n for n in ("code", "message", "domain") if getattr(self, n) is None]
        if missing:
            raise TypeError(f"{cls.__name__} needs {', '.join(missing)}")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, _FALLBACK)
        self.severity = severity or defaults["severity"]
        self.retryable = defaults["retryable"] if retryable is None else retryable
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for structured logs."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }
