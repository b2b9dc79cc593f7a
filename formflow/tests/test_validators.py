"""
Unit tests for the validator compiler.

Tests cover:
- Compiled order (required, email, type checks, lengths, range, pattern)
- Required semantics, including checkbox "must be ticked"
- Failure aggregation (no short-circuit)
- Inclusive length and numeric bounds
- Irrelevant constraints are ignored for the field type
- Invalid regex patterns are ignored
- Type checks for number, date and option fields
"""

import pytest

from formflow.core.schema import FormField
from formflow.core.validators import compile_validators, run_validators


# --- Helpers ---


def make_field(field_type: str = "text", **kwargs) -> FormField:
    data = {"id": "f1", "type": field_type, "label": "Value", "key": "value"}
    data.update(kwargs)
    return FormField(**data)


def failed_rules(field: FormField, value) -> list[str]:
    return [f.rule for f in run_validators(compile_validators(field), value)]


# =============================================================
# Test: Compilation
# =============================================================


class TestCompile:
    """Tests for the compiled validator list."""

    def test_no_constraints(self):
        assert compile_validators(make_field()) == []

    def test_order(self):
        field = make_field(
            "email",
            required=True,
            validation={"minLength": 5, "maxLength": 50, "pattern": ".*@corp\\.com"},
        )
        names = [v.name for v in compile_validators(field)]
        assert names == ["required", "email", "minLength", "maxLength", "pattern"]

    def test_number_order(self):
        field = make_field("number", required=True, validation={"min": 0, "max": 10})
        names = [v.name for v in compile_validators(field)]
        assert names == ["required", "number", "min", "max"]

    def test_range_ignored_for_text(self):
        field = make_field(validation={"min": 0, "max": 10})
        assert compile_validators(field) == []

    def test_length_ignored_for_number(self):
        field = make_field("number", validation={"minLength": 3})
        assert [v.name for v in compile_validators(field)] == ["number"]

    def test_invalid_pattern_is_no_constraint(self):
        field = make_field(validation={"pattern": "([unclosed"})
        assert compile_validators(field) == []
        assert failed_rules(field, "anything") == []

    def test_select_option_check(self):
        field = make_field("select", options=["yes", "no"])
        assert [v.name for v in compile_validators(field)] == ["option"]


# =============================================================
# Test: Required
# =============================================================


class TestRequired:
    """Tests for the required check."""

    @pytest.mark.parametrize("value", [None, "", []])
    def test_empty_values_fail(self, value):
        assert failed_rules(make_field(required=True), value) == ["required"]

    @pytest.mark.parametrize("value", ["x", 0, " "])
    def test_present_values_pass(self, value):
        assert failed_rules(make_field(required=True), value) == []

    def test_number_zero_passes(self):
        assert failed_rules(make_field("number", required=True), 0) == []

    def test_required_checkbox_must_be_true(self):
        field = make_field("checkbox", required=True)
        assert failed_rules(field, False) == ["required"]
        assert failed_rules(field, None) == ["required"]
        assert failed_rules(field, True) == []

    def test_required_message_uses_label(self):
        failures = run_validators(compile_validators(make_field(required=True)), "")
        assert failures[0].message == "Value is required"


# =============================================================
# Test: Aggregation
# =============================================================


class TestAggregation:
    """All validators run; every failure is reported."""

    def test_required_and_min_length_on_empty_string(self):
        field = make_field(required=True, validation={"minLength": 5})
        assert failed_rules(field, "") == ["required", "minLength"]

    def test_optional_blank_passes_length(self):
        field = make_field(validation={"minLength": 5})
        assert failed_rules(field, "") == []
        assert failed_rules(field, None) == []

    def test_min_length_and_pattern_together(self):
        field = make_field(validation={"minLength": 5, "pattern": "[0-9]+"})
        assert failed_rules(field, "ab") == ["minLength", "pattern"]


# =============================================================
# Test: Length bounds
# =============================================================


class TestLength:
    """Length bounds are inclusive."""

    def test_min_length_boundary(self):
        field = make_field(validation={"minLength": 3})
        assert failed_rules(field, "ab") == ["minLength"]
        assert failed_rules(field, "abc") == []

    def test_max_length_boundary(self):
        field = make_field("textarea", validation={"maxLength": 3})
        assert failed_rules(field, "abc") == []
        assert failed_rules(field, "abcd") == ["maxLength"]

    def test_message_and_param(self):
        field = make_field(validation={"minLength": 3})
        failure = run_validators(compile_validators(field), "a")[0]
        assert failure.message == "Minimum 3 characters required"
        assert failure.param == 3


# =============================================================
# Test: Numeric range
# =============================================================


class TestRange:
    """Numeric bounds are inclusive and only apply to number fields."""

    @pytest.fixture
    def amount(self) -> FormField:
        return make_field("number", validation={"min": 0, "max": 1000})

    def test_below_min(self, amount):
        assert failed_rules(amount, -5) == ["min"]

    def test_above_max(self, amount):
        assert failed_rules(amount, 1500) == ["max"]

    def test_within_range(self, amount):
        assert failed_rules(amount, 500) == []

    @pytest.mark.parametrize("value", [0, 1000, 0.0, "1000"])
    def test_bounds_inclusive(self, amount, value):
        assert failed_rules(amount, value) == []

    def test_non_numeric_reports_type_only(self, amount):
        assert failed_rules(amount, "lots") == ["number"]

    def test_boolean_is_not_a_number(self, amount):
        assert failed_rules(amount, True) == ["number"]

    def test_empty_passes_when_optional(self, amount):
        assert failed_rules(amount, None) == []

    def test_messages(self, amount):
        failure = run_validators(compile_validators(amount), -1)[0]
        assert failure.message == "Minimum value is 0"


# =============================================================
# Test: Pattern and email
# =============================================================


class TestPatternAndEmail:
    """Pattern matches the whole value; email uses a fixed format."""

    def test_pattern_must_match_whole_value(self):
        field = make_field(validation={"pattern": "MC-[0-9]{4}"})
        assert failed_rules(field, "MC-1234") == []
        assert failed_rules(field, "MC-1234x") == ["pattern"]
        assert failed_rules(field, "xMC-1234") == ["pattern"]

    def test_pattern_skips_empty(self):
        field = make_field(validation={"pattern": "[0-9]+"})
        assert failed_rules(field, "") == []

    @pytest.mark.parametrize("value", ["a@b.co", "first.last+tag@example.com"])
    def test_valid_emails(self, value):
        assert failed_rules(make_field("email"), value) == []

    @pytest.mark.parametrize("value", ["plain", "a@", "@b.com", "a b@c.com", 42])
    def test_invalid_emails(self, value):
        assert failed_rules(make_field("email"), value) == ["email"]


# =============================================================
# Test: Type checks
# =============================================================


class TestTypeChecks:
    """Date and option type checks."""

    def test_date_field(self):
        field = make_field("date")
        assert failed_rules(field, "2026-02-12") == []
        assert failed_rules(field, "not-a-date") == ["date"]
        assert failed_rules(field, "") == []

    def test_option_membership(self):
        field = make_field("radio", options=["Annual", "Sick"])
        assert failed_rules(field, "Sick") == []
        assert failed_rules(field, "Other") == ["option"]
        assert failed_rules(field, "") == []
