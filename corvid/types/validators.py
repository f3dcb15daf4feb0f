"""
Corvid value validators - reusable validation callables.

TypeSpec constraint methods (``length``, ``range``, ``regex``, ``before``...)
are built from these classes, and any of them can be attached to a spec
directly via ``.validator(...)``.

Usage:
    from corvid import String
    from corvid.types.validators import EmailValidator, RegexValidator

    email = String.validator(EmailValidator())
    sku = String.validator(RegexValidator(r'^[A-Z]{2}-\\d{4}$', "Invalid SKU format"))
"""

from __future__ import annotations

import datetime
import re
from typing import Any, Optional, Sequence, Union


__all__ = [
    "FieldError",
    "BaseValidator",
    "MinValueValidator",
    "MaxValueValidator",
    "MinLengthValidator",
    "MaxLengthValidator",
    "IntegerValidator",
    "RegexValidator",
    "ChoicesValidator",
    "BeforeValidator",
    "AfterValidator",
    "EmailValidator",
    "URLValidator",
]

Number = Union[int, float]


class FieldError(ValueError):
    """
    Raised when a single value fails its type spec.

    ``path`` locates the offending value inside the field (list indices,
    embedded-document keys) and ``value`` is the offending value itself,
    not the whole field.
    """

    def __init__(
        self,
        message: str,
        *,
        value: Any = None,
        path: Optional[Sequence[Union[str, int]]] = None,
        code: str = "invalid",
    ):
        self.message = message
        self.value = value
        self.path = list(path or [])
        self.code = code
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.path:
            return self.message
        where = "".join(f"[{p}]" if isinstance(p, int) else f".{p}" for p in self.path)
        return f"{where.lstrip('.')}: {self.message}"

    def nested(self, step: Union[str, int]) -> FieldError:
        """Return a copy of this error located one step deeper."""
        return FieldError(self.message, value=self.value, path=[step, *self.path], code=self.code)

    def __str__(self) -> str:
        return self._render()


class BaseValidator:
    """Base class for all validators."""

    message: str = "Invalid value."
    code: str = "invalid"

    def __call__(self, value: Any) -> bool:
        if not self.is_valid(value):
            raise FieldError(self.get_message(value), value=value, code=self.code)
        return True

    def is_valid(self, value: Any) -> bool:
        """Override in subclasses. Return True if value is valid."""
        return True

    def get_message(self, value: Any) -> str:
        return self.message

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, self.__class__) and
            self.__dict__ == other.__dict__
        )

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, repr(self)))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class MinValueValidator(BaseValidator):
    """Ensure value >= limit."""

    code = "min_value"

    def __init__(self, limit_value: Any):
        self.limit_value = limit_value

    def is_valid(self, value: Any) -> bool:
        return value >= self.limit_value

    def get_message(self, value: Any) -> str:
        return f"Ensure this value is greater than or equal to {self.limit_value}."

    def __repr__(self) -> str:
        return f"MinValueValidator({self.limit_value})"


class MaxValueValidator(BaseValidator):
    """Ensure value <= limit."""

    code = "max_value"

    def __init__(self, limit_value: Any):
        self.limit_value = limit_value

    def is_valid(self, value: Any) -> bool:
        return value <= self.limit_value

    def get_message(self, value: Any) -> str:
        return f"Ensure this value is less than or equal to {self.limit_value}."

    def __repr__(self) -> str:
        return f"MaxValueValidator({self.limit_value})"


class MinLengthValidator(BaseValidator):
    """Ensure len(value) >= limit (strings and arrays)."""

    code = "min_length"

    def __init__(self, limit_value: int):
        self.limit_value = limit_value

    def is_valid(self, value: Any) -> bool:
        return len(value) >= self.limit_value

    def get_message(self, value: Any) -> str:
        return (
            f"Ensure this value has at least {self.limit_value} item(s) "
            f"(it has {len(value)})."
        )

    def __repr__(self) -> str:
        return f"MinLengthValidator({self.limit_value})"


class MaxLengthValidator(BaseValidator):
    """Ensure len(value) <= limit (strings and arrays)."""

    code = "max_length"

    def __init__(self, limit_value: int):
        self.limit_value = limit_value

    def is_valid(self, value: Any) -> bool:
        return len(value) <= self.limit_value

    def get_message(self, value: Any) -> str:
        return (
            f"Ensure this value has at most {self.limit_value} item(s) "
            f"(it has {len(value)})."
        )

    def __repr__(self) -> str:
        return f"MaxLengthValidator({self.limit_value})"


class IntegerValidator(BaseValidator):
    """Reject numbers with a fractional part."""

    code = "integer"
    message = "Expected an integer."

    def is_valid(self, value: Any) -> bool:
        if isinstance(value, int):
            return True
        return isinstance(value, float) and value.is_integer()

    def __repr__(self) -> str:
        return "IntegerValidator()"


class RegexValidator(BaseValidator):
    """Validate against a regex pattern."""

    code = "invalid"

    def __init__(
        self,
        regex: Union[str, "re.Pattern[str]"],
        message: Optional[str] = None,
        code: Optional[str] = None,
        inverse_match: bool = False,
        flags: int = 0,
    ):
        self._compiled = regex if isinstance(regex, re.Pattern) else re.compile(regex, flags)
        self.regex = self._compiled.pattern
        self.inverse_match = inverse_match
        if message:
            self.message = message
        if code:
            self.code = code

    def is_valid(self, value: Any) -> bool:
        matched = bool(self._compiled.search(str(value)))
        return not matched if self.inverse_match else matched

    def get_message(self, value: Any) -> str:
        if self.message != BaseValidator.message:
            return self.message
        return f"Value does not match pattern {self.regex!r}."

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, RegexValidator)
            and self.regex == other.regex
            and self._compiled.flags == other._compiled.flags
            and self.inverse_match == other.inverse_match
        )

    def __hash__(self) -> int:
        return hash(("RegexValidator", self.regex))

    def __repr__(self) -> str:
        return f"RegexValidator({self.regex!r})"


class ChoicesValidator(BaseValidator):
    """Ensure value is one of a fixed set of choices."""

    code = "invalid_choice"

    def __init__(self, choices: Sequence[Any]):
        self.choices = tuple(choices)

    def is_valid(self, value: Any) -> bool:
        return value in self.choices

    def get_message(self, value: Any) -> str:
        return f"Invalid choice {value!r}. Must be one of: {list(self.choices)}"

    def __repr__(self) -> str:
        return f"ChoicesValidator({list(self.choices)!r})"


class BeforeValidator(BaseValidator):
    """Ensure a datetime is strictly before a limit."""

    code = "date_before"

    def __init__(self, limit: datetime.datetime):
        self.limit = limit

    def is_valid(self, value: Any) -> bool:
        return value < self.limit

    def get_message(self, value: Any) -> str:
        return f"Date must be before {self.limit.isoformat()}."

    def __repr__(self) -> str:
        return f"BeforeValidator({self.limit!r})"


class AfterValidator(BaseValidator):
    """Ensure a datetime is strictly after a limit."""

    code = "date_after"

    def __init__(self, limit: datetime.datetime):
        self.limit = limit

    def is_valid(self, value: Any) -> bool:
        return value > self.limit

    def get_message(self, value: Any) -> str:
        return f"Date must be after {self.limit.isoformat()}."

    def __repr__(self) -> str:
        return f"AfterValidator({self.limit!r})"


class EmailValidator(RegexValidator):
    """Validate email address format."""

    _EMAIL_RE = (
        r'^[a-zA-Z0-9.!#$%&\'*+/=?^_`{|}~-]+@'
        r'[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?'
        r'(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$'
    )

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            self._EMAIL_RE,
            message=message or "Enter a valid email address.",
            code="invalid_email",
        )


class URLValidator(RegexValidator):
    """Validate URL format."""

    _URL_RE = (
        r'^https?://'
        r'(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)*'
        r'[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?'
        r'(?::\d{1,5})?'
        r'(?:/[^\s]*)?$'
    )

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            self._URL_RE,
            message=message or "Enter a valid URL.",
            code="invalid_url",
        )
