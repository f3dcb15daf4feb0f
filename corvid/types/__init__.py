"""
Corvid type system - TypeSpec values, the schema compiler and validators.

Public API:
    - TypeSpec and the base specs: String, Number, Boolean, Date, Null
    - Constructors: Array, Option, Embedded, Ref, Constant
    - compile_schema / compile_spec: shorthand canonicalization
    - FieldError: raised when a single value fails its spec
"""

from .spec import (
    Tag,
    RefMode,
    TypeSpec,
    UNSET,
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
)
from .compiler import compile_schema, compile_spec, PYTHON_TYPES
from .validators import (
    FieldError,
    BaseValidator,
    EmailValidator,
    URLValidator,
    RegexValidator,
)

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
    "compile_schema",
    "compile_spec",
    "PYTHON_TYPES",
    "FieldError",
    "BaseValidator",
    "EmailValidator",
    "URLValidator",
    "RegexValidator",
]
