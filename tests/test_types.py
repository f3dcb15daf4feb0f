"""
Tests for the TypeSpec algebra.

Covers:
- Primitive checks (String, Number, Boolean, Date, Null)
- Builders: clone-on-write, constraint tag checks, optional() sealing
- Array / Option / Embedded / Constant
- Ref targets (by class, by forward name) and reference modes
- Defaults and custom validators
"""

import datetime

import pytest

from corvid.faults import ModelNotFoundFault, SchemaFault
from corvid.models.document import Document
from corvid.types import (
    Array,
    Boolean,
    Constant,
    Date,
    Embedded,
    FieldError,
    Null,
    Number,
    Option,
    Ref,
    RefMode,
    String,
    Tag,
)
from corvid.types.validators import EmailValidator, RegexValidator, URLValidator


# ============================================================================
# Primitives
# ============================================================================


class TestPrimitives:

    def test_string_accepts_str(self):
        assert String.validate("hello") == "hello"

    def test_string_rejects_number(self):
        with pytest.raises(FieldError) as exc_info:
            String.validate(5)
        assert exc_info.value.code == "type"
        assert exc_info.value.value == 5

    def test_number_accepts_int_and_float(self):
        assert Number.validate(3) == 3
        assert Number.validate(2.5) == 2.5

    def test_number_rejects_bool(self):
        assert not Number.is_valid(True)
        assert not Number.is_valid(False)

    def test_boolean_rejects_int(self):
        assert Boolean.is_valid(True)
        assert not Boolean.is_valid(1)

    def test_date_accepts_datetime_only(self):
        now = datetime.datetime(2024, 1, 1, 12, 0)
        assert Date.validate(now) is now
        assert not Date.is_valid("2024-01-01")

    def test_required_by_default(self):
        with pytest.raises(FieldError) as exc_info:
            String.validate(None)
        assert exc_info.value.code == "required"

    def test_null_accepts_only_none(self):
        assert Null.validate(None) is None
        assert not Null.is_valid(0)
        assert Null.is_optional


# ============================================================================
# Builders
# ============================================================================


class TestBuilders:

    def test_builders_return_new_specs(self):
        base = String
        bounded = base.length(1, 3)
        assert bounded is not base
        assert dict(base.constraints) == {}
        assert bounded.constraints["max_length"] == 3

    def test_base_spec_reusable_across_branches(self):
        short = String.length(1, 3)
        longer = String.length(1, 10)
        assert not short.is_valid("abcdef")
        assert longer.is_valid("abcdef")

    def test_length_single_argument_is_exact(self):
        code = String.length(2)
        assert code.is_valid("ab")
        assert not code.is_valid("abc")
        assert not code.is_valid("a")

    def test_invalid_length_bounds(self):
        with pytest.raises(SchemaFault):
            String.length(5, 2)

    def test_integer_range(self):
        age = Number.integer().range(0, 130)
        assert age.validate(30) == 30
        assert not age.is_valid(-1)
        assert not age.is_valid(131)
        assert not age.is_valid(1.5)

    def test_range_reversed(self):
        with pytest.raises(SchemaFault):
            Number.range(10, 1)

    def test_min_max(self):
        spec = Number.min(1).max(3)
        assert spec.is_valid(2)
        assert not spec.is_valid(0)

    def test_regex(self):
        slug = String.regex(r"^[a-z-]+$")
        assert slug.is_valid("hello-world")
        assert not slug.is_valid("Hello World")

    def test_one_of(self):
        color = String.one_of("red", "green")
        assert color.is_valid("red")
        assert not color.is_valid("blue")

    def test_one_of_needs_choices(self):
        with pytest.raises(SchemaFault):
            String.one_of()

    def test_before_after(self):
        window = Date.after(datetime.datetime(2020, 1, 1)).before(datetime.datetime(2030, 1, 1))
        assert window.is_valid(datetime.datetime(2024, 6, 1))
        assert not window.is_valid(datetime.datetime(2019, 12, 31))
        assert not window.is_valid(datetime.datetime(2031, 1, 1))

    def test_constraint_on_wrong_tag(self):
        with pytest.raises(SchemaFault):
            Number.length(1, 2)
        with pytest.raises(SchemaFault):
            String.range(0, 1)
        with pytest.raises(SchemaFault):
            Boolean.regex("x")
        with pytest.raises(SchemaFault):
            String.embed()

    def test_array_length(self):
        tags = Array(String).length(0, 2)
        assert tags.is_valid(["a", "b"])
        assert not tags.is_valid(["a", "b", "c"])


# ============================================================================
# optional()
# ============================================================================


class TestOptional:

    def test_optional_accepts_none(self):
        spec = String.optional()
        assert spec.tag == Tag.OPTION
        assert spec.is_optional
        assert spec.validate(None) is None
        assert spec.validate("x") == "x"

    def test_optional_still_checks_base(self):
        assert not String.length(1, 3).optional().is_valid("toolong")

    def test_optional_is_sealed(self):
        spec = String.optional()
        assert spec.sealed
        with pytest.raises(SchemaFault):
            spec.length(1, 2)
        with pytest.raises(SchemaFault):
            spec.default("x")

    def test_optional_twice(self):
        with pytest.raises(SchemaFault):
            String.optional().optional()

    def test_optional_keeps_default(self):
        spec = String.default("guest").optional()
        assert spec.has_default()
        assert spec.get_default() == "guest"


# ============================================================================
# Composite specs
# ============================================================================


class TestComposites:

    def test_array_element_error_path(self):
        with pytest.raises(FieldError) as exc_info:
            Array(String).validate(["a", 1, "c"])
        err = exc_info.value
        assert err.path == [1]
        assert err.value == 1
        assert str(err).startswith("[1]")

    def test_array_rejects_non_list(self):
        assert not Array(Number).is_valid("abc")

    def test_array_shorthand_element(self):
        spec = Array(int)
        assert spec.element.tag == Tag.NUMBER
        assert not spec.is_valid([1.5])

    def test_option_first_match_wins(self):
        spec = Option(String, Number)
        assert spec.validate("5") == "5"
        assert spec.validate(5) == 5
        assert [a.tag for a in spec.alternatives] == [Tag.STRING, Tag.NUMBER]

    def test_option_no_match(self):
        with pytest.raises(FieldError) as exc_info:
            Option(String, Number).validate(True)
        assert exc_info.value.code == "option"

    def test_option_needs_alternatives(self):
        with pytest.raises(SchemaFault):
            Option()

    def test_embedded_nested_path(self):
        address = Embedded({"city": String, "geo": {"lat": Number}})
        with pytest.raises(FieldError) as exc_info:
            address.validate({"city": "Oslo", "geo": {"lat": "north"}})
        assert exc_info.value.path == ["geo", "lat"]

    def test_embedded_missing_required(self):
        with pytest.raises(FieldError) as exc_info:
            Embedded({"city": String}).validate({})
        assert exc_info.value.path == ["city"]
        assert exc_info.value.code == "required"

    def test_embedded_extra_keys_allowed_by_default(self):
        spec = Embedded({"city": String})
        assert spec.validate({"city": "Oslo", "zip": "0150"}) == {"city": "Oslo", "zip": "0150"}

    def test_embedded_strict(self):
        spec = Embedded({"city": String}).strict()
        with pytest.raises(FieldError) as exc_info:
            spec.validate({"city": "Oslo", "zip": "0150"})
        assert exc_info.value.code == "unknown"
        assert exc_info.value.path == ["zip"]

    def test_embedded_strict_from_caller(self):
        spec = Embedded({"city": String})
        assert not spec.is_valid({"city": "Oslo", "zip": "0150"}, strict=True)
        assert spec.strict(False).is_valid({"city": "Oslo", "zip": "0150"}, strict=True)

    def test_embedded_rejects_spec_argument(self):
        with pytest.raises(SchemaFault):
            Embedded(String)

    def test_validate_does_not_mutate_input(self):
        value = {"city": "Oslo"}
        Embedded({"city": String}).validate(value)
        assert value == {"city": "Oslo"}

    def test_constant(self):
        spec = Constant({"kind": "admin", "level": [1, 2]})
        assert spec.is_valid({"kind": "admin", "level": [1, 2]})
        assert not spec.is_valid({"kind": "admin", "level": [1]})

    def test_constant_keeps_bool_distinct(self):
        assert not Constant(1).is_valid(True)
        assert Constant(True).is_valid(True)
        assert Constant(1).is_valid(1.0)


# ============================================================================
# Defaults and validators
# ============================================================================


class TestDefaultsAndValidators:

    def test_default_value_is_copied(self):
        spec = Array(String).default(["a"])
        first = spec.get_default()
        first.append("b")
        assert spec.get_default() == ["a"]

    def test_callable_default(self):
        spec = Array(String).default(list)
        assert spec.get_default() == []

    def test_no_default(self):
        assert not String.has_default()
        assert String.get_default() is None

    def test_predicate_validator(self):
        even = Number.validator(lambda v: v % 2 == 0)
        assert even.is_valid(4)
        with pytest.raises(FieldError) as exc_info:
            even.validate(3)
        assert exc_info.value.code == "validator"

    def test_predicate_value_error_becomes_field_error(self):
        def no_spaces(value):
            if " " in value:
                raise ValueError("spaces are not allowed")
            return True

        with pytest.raises(FieldError, match="spaces are not allowed"):
            String.validator(no_spaces).validate("a b")

    def test_validator_must_be_callable(self):
        with pytest.raises(SchemaFault):
            String.validator("nope")

    def test_validator_classes(self):
        email = String.validator(EmailValidator())
        assert email.is_valid("ann@example.com")
        assert not email.is_valid("not-an-email")

        homepage = String.validator(URLValidator())
        assert homepage.is_valid("https://example.com:8080/about")
        assert not homepage.is_valid("ftp://example.com")

        sku = String.validator(RegexValidator(r"^[A-Z]{2}-\d{4}$", "Invalid SKU format"))
        with pytest.raises(FieldError, match="Invalid SKU format"):
            sku.validate("ab-1")


# ============================================================================
# References
# ============================================================================


class TestRefSpecs:

    def test_ref_by_class(self):
        class SpecOwner(Document):
            name = String

        spec = Ref(SpecOwner)
        assert spec.tag == Tag.REFERENCE
        assert spec.target is SpecOwner
        assert spec.mode == RefMode.REF_ONLY

    def test_forward_ref_resolves_lazily(self):
        spec = Ref("SpecLater")
        assert spec.target_name == "SpecLater"

        class SpecLater(Document):
            name = String

        assert spec.target is SpecLater

    def test_unknown_ref(self):
        with pytest.raises(ModelNotFoundFault):
            Ref("SpecNowhere").target

    def test_ref_requires_model(self):
        with pytest.raises(SchemaFault):
            Ref(42)
        with pytest.raises(SchemaFault):
            Ref("")

    def test_ref_modes(self):
        assert Ref("SpecOwner").embed().mode == RefMode.EMBED
        assert Ref("SpecOwner").embed_only().mode == RefMode.EMBED_ONLY

    def test_ref_only_accepts_identifier(self):
        class SpecTarget(Document):
            name = String

        spec = Ref(SpecTarget)
        assert spec.validate("X1") == "X1"
        with pytest.raises(FieldError) as exc_info:
            spec.validate({"name": "Ann"})
        assert exc_info.value.code == "reference"

    def test_ref_only_rejects_unsaved_instance(self):
        class SpecUnsaved(Document):
            name = String

        with pytest.raises(FieldError) as exc_info:
            Ref(SpecUnsaved).validate(SpecUnsaved(name="Ann"))
        assert exc_info.value.code == "unsaved_reference"

        saved = SpecUnsaved(name="Ann", _id="abc")
        assert Ref(SpecUnsaved).validate(saved) is saved

    def test_ref_rejects_wrong_model(self):
        class SpecA(Document):
            name = String

        class SpecB(Document):
            name = String

        with pytest.raises(FieldError):
            Ref(SpecA).validate(SpecB(name="x", _id="1"))

    def test_embed_validates_target_fields(self):
        class SpecProfile(Document):
            bio = String

        spec = Ref(SpecProfile).embed()
        assert spec.validate({"bio": "hi"}) == {"bio": "hi"}
        with pytest.raises(FieldError) as exc_info:
            spec.validate({"bio": 5})
        assert exc_info.value.path == ["bio"]
        assert not spec.is_valid("X1")
