"""
Validator compiler.

Turns a field's declared constraints into an ordered list of checks.
The runtime runs every check and reports all failures together, so a
user sees every problem with a value at once.

Order: required, email, type checks, minLength, maxLength, min, max,
pattern. Constraints that do not apply to the field's type are
ignored rather than rejected.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from formflow.core.schema import FieldType, FormField
from formflow.core.utils import is_empty, is_number, parse_date, to_number

logger = logging.getLogger(__name__)

# Same shape of address the browser-side email validator accepts
EMAIL_PATTERN = re.compile(
    r"^(?=.{1,254}$)(?=.{1,64}@)"
    r"[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

STRING_FIELD_TYPES = frozenset({FieldType.TEXT, FieldType.EMAIL, FieldType.TEXTAREA})
PATTERN_FIELD_TYPES = STRING_FIELD_TYPES | {FieldType.NUMBER}


class ValidationFailure(BaseModel):
    """One failed rule for one value."""

    rule: str
    message: str
    param: Any = None


@dataclass(frozen=True)
class Validator:
    """A compiled check. `check` returns True when the value passes."""

    name: str
    message: str
    check: Callable[[Any], bool]
    param: Any = None

    def __call__(self, value: Any) -> ValidationFailure | None:
        if self.check(value):
            return None
        return ValidationFailure(rule=self.name, message=self.message, param=self.param)


# -----------------------------------------------------------------
# Compiler
# -----------------------------------------------------------------


def compile_validators(field: FormField) -> list[Validator]:
    """Compile the ordered validator list for a field.

    Args:
        field: The form field definition.

    Returns:
        Validators in evaluation order. Empty when the field declares
        no applicable constraint.
    """
    validators: list[Validator] = []
    label = field.label or field.key

    if field.required:
        validators.append(_required_validator(field, label))

    if field.type == FieldType.EMAIL:
        validators.append(Validator("email", "Invalid email format", _check_email))

    validators.extend(_type_validators(field))

    rule = field.validation
    if rule is None:
        return validators

    # Length checks of a required field also run on "" so both failures show
    skip_empty = not field.required

    if field.type in STRING_FIELD_TYPES:
        if rule.min_length is not None:
            validators.append(Validator(
                "minLength",
                f"Minimum {rule.min_length} characters required",
                _length_check(lambda n, bound=rule.min_length: n >= bound, skip_empty),
                rule.min_length,
            ))
        if rule.max_length is not None:
            validators.append(Validator(
                "maxLength",
                f"Maximum {rule.max_length} characters allowed",
                _length_check(lambda n, bound=rule.max_length: n <= bound, skip_empty),
                rule.max_length,
            ))

    if field.type == FieldType.NUMBER:
        if rule.min is not None:
            validators.append(Validator(
                "min",
                f"Minimum value is {_format_bound(rule.min)}",
                _range_check(lambda n, bound=rule.min: n >= bound),
                rule.min,
            ))
        if rule.max is not None:
            validators.append(Validator(
                "max",
                f"Maximum value is {_format_bound(rule.max)}",
                _range_check(lambda n, bound=rule.max: n <= bound),
                rule.max,
            ))

    if rule.pattern and field.type in PATTERN_FIELD_TYPES:
        pattern_validator = _pattern_validator(field, rule.pattern)
        if pattern_validator is not None:
            validators.append(pattern_validator)

    return validators


def run_validators(validators: list[Validator], value: Any) -> list[ValidationFailure]:
    """Run every validator against a value and collect all failures."""
    failures = []
    for validator in validators:
        failure = validator(value)
        if failure is not None:
            failures.append(failure)
    return failures


# -----------------------------------------------------------------
# Individual checks
# -----------------------------------------------------------------


def _required_validator(field: FormField, label: str) -> Validator:
    if field.type == FieldType.CHECKBOX:
        # A required checkbox must be ticked
        return Validator("required", f"{label} is required", lambda v: v is True)
    return Validator("required", f"{label} is required", _check_required)


def _check_required(value: Any) -> bool:
    if is_empty(value):
        return False
    if isinstance(value, (list, tuple, set, dict)) and not value:
        return False
    return True


def _check_email(value: Any) -> bool:
    if is_empty(value):
        return True
    return isinstance(value, str) and EMAIL_PATTERN.match(value) is not None


def _type_validators(field: FormField) -> list[Validator]:
    match field.type:
        case FieldType.NUMBER:
            return [Validator("number", "Must be a number", _check_number)]
        case FieldType.DATE:
            return [Validator("date", "Invalid date", _check_date)]
        case FieldType.SELECT | FieldType.RADIO:
            if not field.options:
                return []
            options = list(field.options)
            return [Validator(
                "option",
                "Choose one of the available options",
                lambda v: is_empty(v) or v in options,
                options,
            )]
    return []


def _check_number(value: Any) -> bool:
    if is_empty(value):
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        number = to_number(value)
        return number == number and abs(number) != float("inf")
    return is_number(value)


def _check_date(value: Any) -> bool:
    if is_empty(value):
        return True
    return parse_date(value) is not None


def _length_check(compare: Callable[[int], bool], skip_empty: bool) -> Callable[[Any], bool]:
    def check(value: Any) -> bool:
        if value is None or (skip_empty and value == ""):
            return True
        if not isinstance(value, (str, list)):
            return True
        return compare(len(value))

    return check


def _range_check(compare: Callable[[float], bool]) -> Callable[[Any], bool]:
    def check(value: Any) -> bool:
        if is_empty(value):
            return True
        number = to_number(value)
        if number != number:
            # Not a number; the type check reports it
            return True
        return compare(number)

    return check


def _pattern_validator(field: FormField, pattern: str) -> Validator | None:
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        logger.warning(
            "Ignoring invalid pattern %r on field '%s': %s", pattern, field.key, e
        )
        return None

    def check(value: Any) -> bool:
        if is_empty(value):
            return True
        return compiled.fullmatch(str(value)) is not None

    return Validator("pattern", "Invalid format", check, pattern)


def _format_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)
