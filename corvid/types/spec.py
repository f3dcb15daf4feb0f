"""
Corvid TypeSpec - immutable, composable value constraints.

Every builder method returns a NEW TypeSpec (clone-on-write), so a base
spec can be branched and reused across fields safely:

    from corvid.types import String, Number, Date, Array, Ref

    name = String.length(1, 80)
    age = Number.integer().range(0, 130)
    tags = Array(String.regex(r"^[a-z]+$")).length(0, 10)
    born = Date.before(datetime.datetime(2100, 1, 1)).optional()
    owner = Ref("User")

Tags:
    STRING, NUMBER, BOOLEAN, DATE   primitives
    NULL                            accepts only None
    ARRAY(element)                  list of element values
    OPTION(alternatives)            first matching alternative wins
    DOCUMENT(fields)                embedded mapping of named fields
    REFERENCE(target, mode)         identifier or document of another model
    CONSTANT(value)                 deep-equal to a literal

``optional()`` wraps a spec as ``OPTION(spec, NULL)`` and seals it; it must
be the last call in a chain.
"""

from __future__ import annotations

import copy
import datetime
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union, TYPE_CHECKING

from ..faults.domains import SchemaFault
from .validators import (
    AfterValidator,
    BeforeValidator,
    ChoicesValidator,
    FieldError,
    IntegerValidator,
    MaxLengthValidator,
    MaxValueValidator,
    MinLengthValidator,
    MinValueValidator,
    RegexValidator,
)

if TYPE_CHECKING:
    from ..models.document import Document

__all__ = [
    "Tag",
    "RefMode",
    "TypeSpec",
    "UNSET",
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
]


# ── Sentinel ─────────────────────────────────────────────────────────────────

class _Unset:
    """Sentinel for distinguishing 'no default' from a None default."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "<UNSET>"

    def __bool__(self):
        return False

UNSET = _Unset()


class Tag(str, Enum):
    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    NULL = "Null"
    ARRAY = "Array"
    OPTION = "Option"
    DOCUMENT = "Document"
    REFERENCE = "Reference"
    CONSTANT = "Constant"


class RefMode(str, Enum):
    REF_ONLY = "refOnly"
    EMBED = "embed"
    EMBED_ONLY = "embedOnly"


_PRIMITIVES = (Tag.STRING, Tag.NUMBER, Tag.BOOLEAN, Tag.DATE)


def _same_literal(value: Any, literal: Any) -> bool:
    """Deep equality that keeps bool distinct from 1/0."""
    if isinstance(literal, bool) or isinstance(value, bool):
        return isinstance(value, bool) and isinstance(literal, bool) and value is literal
    if isinstance(literal, (list, tuple)):
        return (
            isinstance(value, (list, tuple))
            and len(value) == len(literal)
            and all(_same_literal(v, l) for v, l in zip(value, literal))
        )
    if isinstance(literal, Mapping):
        return (
            isinstance(value, Mapping)
            and value.keys() == literal.keys()
            and all(_same_literal(value[k], literal[k]) for k in literal)
        )
    return type(value) is type(literal) and value == literal or (
        isinstance(value, (int, float)) and isinstance(literal, (int, float)) and value == literal
    )


class TypeSpec:
    """
    Immutable constraint description for a single value.

    Never instantiate directly - start from ``String``, ``Number``,
    ``Boolean``, ``Date``, ``Null`` or the ``Array``/``Option``/
    ``Embedded``/``Ref``/``Constant`` constructors.
    """

    __slots__ = (
        "_tag",
        "_element",
        "_alternatives",
        "_fields",
        "_target",
        "_mode",
        "_constant",
        "_default",
        "_validators",
        "_constraints",
        "_strict",
        "_sealed",
    )

    def __init__(
        self,
        tag: Tag,
        *,
        element: Optional[TypeSpec] = None,
        alternatives: Tuple[TypeSpec, ...] = (),
        fields: Optional[Dict[str, TypeSpec]] = None,
        target: Any = None,
        mode: RefMode = RefMode.REF_ONLY,
        constant: Any = UNSET,
        default: Any = UNSET,
        validators: Tuple[Callable[[Any], Any], ...] = (),
        constraints: Optional[Dict[str, Any]] = None,
        strict: Optional[bool] = None,
        sealed: bool = False,
    ):
        self._tag = tag
        self._element = element
        self._alternatives = tuple(alternatives)
        self._fields = dict(fields or {})
        self._target = target
        self._mode = mode
        self._constant = constant
        self._default = default
        self._validators = tuple(validators)
        self._constraints = dict(constraints or {})
        self._strict = strict
        self._sealed = sealed

    # ── Introspection ────────────────────────────────────────────────

    @property
    def tag(self) -> Tag:
        return self._tag

    @property
    def element(self) -> Optional[TypeSpec]:
        return self._element

    @property
    def alternatives(self) -> Tuple[TypeSpec, ...]:
        return self._alternatives

    @property
    def fields(self) -> Mapping[str, TypeSpec]:
        return MappingProxyType(self._fields)

    @property
    def mode(self) -> RefMode:
        return self._mode

    @property
    def constant(self) -> Any:
        return self._constant

    @property
    def constraints(self) -> Mapping[str, Any]:
        return MappingProxyType(self._constraints)

    @property
    def validators(self) -> Tuple[Callable[[Any], Any], ...]:
        return self._validators

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def is_optional(self) -> bool:
        """True if None is accepted in addition to the base type."""
        if self._tag == Tag.NULL:
            return True
        return self._tag == Tag.OPTION and any(a.is_optional for a in self._alternatives)

    @property
    def target_name(self) -> Optional[str]:
        """Name of the referenced model, resolved or not."""
        if self._tag != Tag.REFERENCE:
            return None
        if isinstance(self._target, str):
            return self._target
        return self._target.__name__

    @property
    def target(self) -> type[Document]:
        """
        The referenced model class.

        Name placeholders are looked up in the registry on first use;
        an unknown name raises ``ModelNotFoundFault``.
        """
        if self._tag != Tag.REFERENCE:
            raise SchemaFault(f"{self!r} is not a reference")
        if isinstance(self._target, str):
            from ..models.registry import ModelRegistry
            return ModelRegistry.resolve(self._target)
        return self._target

    # ── Defaults ─────────────────────────────────────────────────────

    def has_default(self) -> bool:
        return self._default is not UNSET

    def get_default(self) -> Any:
        """Evaluate the default: callables are called, values deep-copied."""
        if self._default is UNSET:
            return None
        if callable(self._default):
            return self._default()
        return copy.deepcopy(self._default)

    # ── Builders (each returns a new spec) ───────────────────────────

    def _clone(self, **changes: Any) -> TypeSpec:
        if self._sealed:
            raise SchemaFault(
                f"optional() must be the last call in a chain, cannot extend {self!r}"
            )
        state = {
            "element": self._element,
            "alternatives": self._alternatives,
            "fields": self._fields,
            "target": self._target,
            "mode": self._mode,
            "constant": self._constant,
            "default": self._default,
            "validators": self._validators,
            "constraints": self._constraints,
            "strict": self._strict,
            "sealed": self._sealed,
        }
        state.update(changes)
        return TypeSpec(self._tag, **state)

    def _require(self, operation: str, *tags: Tag) -> None:
        if self._sealed:
            raise SchemaFault(
                f"optional() must be the last call in a chain, cannot call {operation}() on {self!r}"
            )
        if self._tag not in tags:
            allowed = ", ".join(t.value for t in tags)
            raise SchemaFault(f"{operation}() applies to {allowed}, not {self._tag.value}")

    def _constrain(self, **constraints: Any) -> TypeSpec:
        merged = dict(self._constraints)
        merged.update(constraints)
        return self._clone(constraints=merged)

    def default(self, value: Any) -> TypeSpec:
        """Value (or zero-argument producer) used when an instance is created."""
        return self._clone(default=value)

    def validator(self, predicate: Callable[[Any], Any]) -> TypeSpec:
        """Add a predicate; it must return truthy or raise ``FieldError``."""
        if not callable(predicate):
            raise SchemaFault(f"validator must be callable, got {predicate!r}")
        return self._clone(validators=self._validators + (predicate,))

    def length(self, minimum: int, maximum: Optional[int] = None) -> TypeSpec:
        """Length bounds; a single argument means an exact length."""
        self._require("length", Tag.STRING, Tag.ARRAY)
        maximum = minimum if maximum is None else maximum
        if minimum < 0 or maximum < minimum:
            raise SchemaFault(f"invalid length bounds ({minimum}, {maximum})")
        return self._constrain(min_length=minimum, max_length=maximum)

    def min(self, limit: Union[int, float]) -> TypeSpec:
        self._require("min", Tag.NUMBER)
        return self._constrain(min=limit)

    def max(self, limit: Union[int, float]) -> TypeSpec:
        self._require("max", Tag.NUMBER)
        return self._constrain(max=limit)

    def range(self, low: Union[int, float], high: Union[int, float]) -> TypeSpec:
        """Inclusive numeric range."""
        self._require("range", Tag.NUMBER)
        if high < low:
            raise SchemaFault(f"invalid range ({low}, {high})")
        return self._constrain(min=low, max=high)

    def integer(self) -> TypeSpec:
        self._require("integer", Tag.NUMBER)
        return self._constrain(integer=True)

    def regex(self, pattern: Any) -> TypeSpec:
        self._require("regex", Tag.STRING)
        return self._constrain(regex=RegexValidator(pattern))

    def one_of(self, *choices: Any) -> TypeSpec:
        self._require("one_of", Tag.STRING, Tag.NUMBER)
        if not choices:
            raise SchemaFault("one_of() needs at least one choice")
        return self._constrain(choices=tuple(choices))

    def before(self, limit: datetime.datetime) -> TypeSpec:
        self._require("before", Tag.DATE)
        return self._constrain(before=limit)

    def after(self, limit: datetime.datetime) -> TypeSpec:
        self._require("after", Tag.DATE)
        return self._constrain(after=limit)

    def strict(self, flag: bool = True) -> TypeSpec:
        """Reject unknown keys in this embedded document."""
        self._require("strict", Tag.DOCUMENT)
        return self._clone(strict=flag)

    def embed(self) -> TypeSpec:
        """Store the referenced document inline (it keeps its own collection)."""
        self._require("embed", Tag.REFERENCE)
        return self._clone(mode=RefMode.EMBED)

    def embed_only(self) -> TypeSpec:
        """Store the referenced document inline only (one-way copy)."""
        self._require("embed_only", Tag.REFERENCE)
        return self._clone(mode=RefMode.EMBED_ONLY)

    def optional(self) -> TypeSpec:
        """Accept None as well. Must be the last call in a chain."""
        if self._sealed:
            raise SchemaFault(f"{self!r} is already optional")
        return TypeSpec(
            Tag.OPTION,
            alternatives=(self, Null),
            default=self._default,
            sealed=True,
        )

    # ── Validation ───────────────────────────────────────────────────

    def is_valid(self, value: Any, *, strict: bool = False) -> bool:
        try:
            self.validate(value, strict=strict)
        except FieldError:
            return False
        return True

    def validate(self, value: Any, *, strict: bool = False) -> Any:
        """
        Validate ``value`` and return its normalized form.

        Raises ``FieldError`` locating the offending value. ``strict`` is the
        default strictness for embedded documents that do not set their own.
        This never mutates ``value`` or this TypeSpec.
        """
        normalized = self._check(value, strict)
        if value is None and self._tag in (Tag.NULL, Tag.OPTION):
            return normalized
        for check in self._constraint_validators():
            check(normalized)
        for predicate in self._validators:
            self._run_predicate(predicate, normalized)
        return normalized

    def _check(self, value: Any, strict: bool) -> Any:
        tag = self._tag
        if tag == Tag.NULL:
            if value is not None:
                raise FieldError(f"Expected null, got {type(value).__name__}", value=value, code="type")
            return None
        if tag == Tag.OPTION:
            return self._check_option(value, strict)
        if value is None:
            raise FieldError("This field is required.", value=None, code="required")
        if tag == Tag.STRING:
            if not isinstance(value, str):
                raise FieldError(f"Expected string, got {type(value).__name__}", value=value, code="type")
            return value
        if tag == Tag.NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise FieldError(f"Expected number, got {type(value).__name__}", value=value, code="type")
            return value
        if tag == Tag.BOOLEAN:
            if not isinstance(value, bool):
                raise FieldError(f"Expected boolean, got {type(value).__name__}", value=value, code="type")
            return value
        if tag == Tag.DATE:
            if not isinstance(value, datetime.datetime):
                raise FieldError(f"Expected datetime, got {type(value).__name__}", value=value, code="type")
            return value
        if tag == Tag.CONSTANT:
            if not _same_literal(value, self._constant):
                raise FieldError(f"Expected constant {self._constant!r}", value=value, code="constant")
            return value
        if tag == Tag.ARRAY:
            return self._check_array(value, strict)
        if tag == Tag.DOCUMENT:
            return self._check_document(value, strict)
        return self._check_reference(value, strict)

    def _check_option(self, value: Any, strict: bool) -> Any:
        reasons = []
        for alternative in self._alternatives:
            try:
                return alternative.validate(value, strict=strict)
            except FieldError as exc:
                reasons.append(exc.message)
        raise FieldError(
            f"Value matches none of {self!r} ({'; '.join(reasons)})",
            value=value,
            code="option",
        )

    def _check_array(self, value: Any, strict: bool) -> list:
        if not isinstance(value, (list, tuple)):
            raise FieldError(f"Expected array, got {type(value).__name__}", value=value, code="type")
        normalized = []
        for index, item in enumerate(value):
            try:
                normalized.append(self._element.validate(item, strict=strict))
            except FieldError as exc:
                raise exc.nested(index) from None
        return normalized

    def _check_document(self, value: Any, strict: bool) -> dict:
        if not isinstance(value, Mapping):
            raise FieldError(f"Expected embedded document, got {type(value).__name__}", value=value, code="type")
        effective = strict if self._strict is None else self._strict
        normalized = dict(value)
        for name, spec in self._fields.items():
            try:
                checked = spec.validate(value.get(name), strict=strict)
            except FieldError as exc:
                raise exc.nested(name) from None
            if name in value:
                normalized[name] = checked
        if effective:
            for key in value:
                if key not in self._fields and key != "_id":
                    raise FieldError(f"Unknown field '{key}'", value=value[key], path=[key], code="unknown")
        return normalized

    def _check_reference(self, value: Any, strict: bool) -> Any:
        from ..models.document import Document

        target = self.target
        if isinstance(value, Document):
            if not isinstance(value, target):
                raise FieldError(
                    f"Expected a {target.__name__} reference, got {type(value).__name__}",
                    value=value,
                    code="reference",
                )
            if self._mode == RefMode.REF_ONLY and value._id is None:
                raise FieldError(
                    f"Referenced {target.__name__} has not been saved",
                    value=value,
                    code="unsaved_reference",
                )
            return value
        if self._mode == RefMode.REF_ONLY:
            if isinstance(value, (Mapping, list, tuple, set, bool)):
                raise FieldError(
                    f"Expected a {target.__name__} identifier, got {type(value).__name__}",
                    value=value,
                    code="reference",
                )
            return value
        if not isinstance(value, Mapping):
            raise FieldError(
                f"Expected an embedded {target.__name__} document, got {type(value).__name__}",
                value=value,
                code="reference",
            )
        return target.embedded_spec().validate(value, strict=strict)

    def _constraint_validators(self) -> list:
        c = self._constraints
        checks: list = []
        if c.get("integer"):
            checks.append(IntegerValidator())
        if "min" in c:
            checks.append(MinValueValidator(c["min"]))
        if "max" in c:
            checks.append(MaxValueValidator(c["max"]))
        if "min_length" in c:
            checks.append(MinLengthValidator(c["min_length"]))
        if "max_length" in c:
            checks.append(MaxLengthValidator(c["max_length"]))
        if "regex" in c:
            checks.append(c["regex"])
        if "choices" in c:
            checks.append(ChoicesValidator(c["choices"]))
        if "before" in c:
            checks.append(BeforeValidator(c["before"]))
        if "after" in c:
            checks.append(AfterValidator(c["after"]))
        return checks

    @staticmethod
    def _run_predicate(predicate: Callable[[Any], Any], value: Any) -> None:
        try:
            ok = predicate(value)
        except FieldError:
            raise
        except (TypeError, ValueError) as exc:
            raise FieldError(str(exc) or "Invalid value.", value=value, code="validator") from exc
        if not ok:
            name = getattr(predicate, "__name__", repr(predicate))
            raise FieldError(f"Failed validator {name}", value=value, code="validator")

    # ── Representation ───────────────────────────────────────────────

    def __repr__(self) -> str:
        tag = self._tag
        if tag == Tag.ARRAY:
            base = f"Array({self._element!r})"
        elif tag == Tag.OPTION:
            base = "Option(" + ", ".join(repr(a) for a in self._alternatives) + ")"
        elif tag == Tag.DOCUMENT:
            base = "Embedded({" + ", ".join(f"{k!r}: {v!r}" for k, v in self._fields.items()) + "})"
        elif tag == Tag.REFERENCE:
            base = f"Ref({self.target_name!r})"
            if self._mode != RefMode.REF_ONLY:
                base += f".{'embed' if self._mode == RefMode.EMBED else 'embed_only'}()"
        elif tag == Tag.CONSTANT:
            base = f"Constant({self._constant!r})"
        else:
            base = tag.value
        for key, value in self._constraints.items():
            base += f".{key}({value!r})"
        return base


# ── Base specs ───────────────────────────────────────────────────────────────

String = TypeSpec(Tag.STRING)
Number = TypeSpec(Tag.NUMBER)
Boolean = TypeSpec(Tag.BOOLEAN)
Date = TypeSpec(Tag.DATE)
Null = TypeSpec(Tag.NULL)


def Array(element: Any) -> TypeSpec:
    """Array of ``element`` (any schema definition)."""
    from .compiler import compile_spec
    return TypeSpec(Tag.ARRAY, element=compile_spec(element, path="[]"))


def Option(*alternatives: Any) -> TypeSpec:
    """First-match-wins union of ``alternatives``, in declaration order."""
    from .compiler import compile_spec
    if not alternatives:
        raise SchemaFault("Option() needs at least one alternative")
    return TypeSpec(
        Tag.OPTION,
        alternatives=tuple(compile_spec(a, path=f"<{i}>") for i, a in enumerate(alternatives)),
    )


def Embedded(fields: Mapping[str, Any]) -> TypeSpec:
    """Embedded document with the given field definitions."""
    from .compiler import compile_schema
    if isinstance(fields, TypeSpec):
        raise SchemaFault("Embedded() takes a mapping of field definitions")
    return TypeSpec(Tag.DOCUMENT, fields=compile_schema(fields))


def Ref(target: Union[str, type]) -> TypeSpec:
    """Reference to another model, by class or by (possibly forward) name."""
    from ..models.document import Document
    if isinstance(target, str):
        if not target:
            raise SchemaFault("Ref() needs a model name")
    elif not (isinstance(target, type) and issubclass(target, Document)):
        raise SchemaFault(f"Ref() target must be a model class or name, got {target!r}")
    return TypeSpec(Tag.REFERENCE, target=target)


def Constant(value: Any) -> TypeSpec:
    """Accept only values deep-equal to ``value``."""
    return TypeSpec(Tag.CONSTANT, constant=copy.deepcopy(value))
