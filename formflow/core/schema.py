"""
Form definition models.

These Pydantic models are the contract between the authoring tool,
the storage API and the runtime engine. JSON payloads use camelCase
names (`fieldKey`, `defaultValue`, `minLength`); Python code uses the
snake_case attributes. Unknown JSON keys are ignored so newer payloads
still load.

Model construction is lenient: a schema with duplicate keys or dangling
condition references still parses, because authors must be able to keep
editing it. Structural problems are reported by `find_schema_problems`.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SerializationInfo, model_serializer
from pydantic.alias_generators import to_camel

from formflow.core.errors import SchemaError


# --- Enums ---


class FieldType(str, Enum):
    """Supported form field types."""

    TEXT = "text"
    NUMBER = "number"
    EMAIL = "email"
    DATE = "date"
    SELECT = "select"
    CHECKBOX = "checkbox"
    TEXTAREA = "textarea"
    RADIO = "radio"


class ConditionOperator(str, Enum):
    """Operators available to visibility conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


# Operators that do not compare against a condition value
VALUELESS_OPERATORS = frozenset({ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY})

# Field types whose values come from a list of options
OPTION_FIELD_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO})


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )


# --- Conditions and validation rules ---


class FieldCondition(_CamelModel):
    """A single predicate over another field's current value.

    `value` is ignored by `isEmpty` / `isNotEmpty` and expected for
    every other operator.
    """

    field_key: str = Field(
        default="",
        description="Key of the field whose value is tested",
    )
    operator: ConditionOperator = Field(
        default=ConditionOperator.EQUALS,
        description="The comparison operator to apply",
    )
    value: Any = Field(
        default=None,
        description="Static comparison value",
    )

    def needs_value(self) -> bool:
        return self.operator not in VALUELESS_OPERATORS


class ValidationRule(_CamelModel):
    """Optional constraints for a field.

    Only the constraints meaningful for the owning field's type are
    compiled; the rest are ignored.
    """

    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    min: float | None = None
    max: float | None = None
    pattern: str | None = None


# --- Form Field ---


class FormField(_CamelModel):
    """Definition of a single form field.

    `id` is the immutable identity of the field; `key` is the variable
    name used to store its value and to reference it from conditions.
    """

    id: str = Field(..., description="Stable field identity")
    type: FieldType = Field(..., description="The widget type for this field")
    label: str = Field(default="", description="Label shown next to the field")
    key: str = Field(default="", description="Variable name, unique per form")
    placeholder: str | None = None
    required: bool = False
    disabled: bool = False
    options: list[str] | None = Field(
        default=None,
        description="Available options (select and radio only)",
    )
    default_value: Any = None
    validation: ValidationRule | None = None
    conditions: list[FieldCondition] | None = Field(
        default=None,
        description="Visibility conditions, combined with AND",
    )
    order: int = Field(default=0, ge=0)

    def has_default(self) -> bool:
        """True when the payload declared a defaultValue (even null)."""
        return "default_value" in self.model_fields_set

    @model_serializer(mode="wrap")
    def _keep_declared_null_default(self, handler, info: SerializationInfo) -> dict[str, Any]:
        # exclude_none must not drop an explicit `defaultValue: null`
        data = handler(self)
        if info.exclude_none and self.has_default() and self.default_value is None:
            data["defaultValue" if info.by_alias else "default_value"] = None
        return data

    def has_conditions(self) -> bool:
        return bool(self.conditions)


# --- Top-Level Form Definition ---


class FormDefinition(_CamelModel):
    """A complete form: metadata plus its fields."""

    id: int | str | None = None
    name: str = ""
    key: str = ""
    description: str | None = None
    fields: list[FormField] = Field(default_factory=list)

    def sorted_fields(self) -> list[FormField]:
        """Fields in rendering order (ascending `order`, stable)."""
        return sorted(self.fields, key=lambda f: f.order)

    def field_keys(self) -> set[str]:
        return {f.key for f in self.fields}

    def get_field(self, key: str) -> FormField | None:
        for field in self.fields:
            if field.key == key:
                return field
        return None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape used by the storage API."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Submissions ---


class SubmissionStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class FormSubmission(_CamelModel):
    """A stored answer record (draft or submitted).

    The answers travel as a JSON string in `dataJson`, keyed by field key.
    """

    id: int | None = None
    form_definition_id: int | str | None = None
    form_key: str | None = None
    form_name: str | None = None
    form_version: int | None = None
    data_json: str | None = None
    status: SubmissionStatus | str | None = None
    submitted_by: str | None = None
    business_key: str | None = None
    notes: str | None = None
    validation_errors: str | None = None

    def answers(self) -> dict[str, Any]:
        """Decoded answer record.

        Raises:
            ValueError: If `dataJson` is not a JSON object.
        """
        if not self.data_json:
            return {}
        data = json.loads(self.data_json)
        if not isinstance(data, dict):
            raise ValueError("dataJson must encode a JSON object")
        return data


# --- Structural checks ---


def find_schema_problems(definition: FormDefinition) -> list[str]:
    """Return human-readable structural problems of a form definition.

    An empty list means the schema is structurally sound. This never
    raises: authoring continues while problems exist.
    """
    problems: list[str] = []

    seen_ids: set[str] = set()
    seen_keys: set[str] = set()
    for index, f in enumerate(definition.fields):
        if f.id in seen_ids:
            problems.append(f"Duplicate field id: '{f.id}'")
        seen_ids.add(f.id)

        if not f.key.strip():
            problems.append(f"Field #{index + 1} has an empty key")
        elif f.key in seen_keys:
            problems.append(f"Duplicate field key: '{f.key}'")
        seen_keys.add(f.key)

        if not f.label.strip():
            problems.append(f"Field '{f.key or f.id}' has an empty label")

        if f.type in OPTION_FIELD_TYPES and not f.options:
            problems.append(
                f"Field '{f.key or f.id}' of type '{f.type.value}' must have options"
            )

    keys = definition.field_keys()
    for f in definition.fields:
        for condition in f.conditions or []:
            if not condition.field_key:
                problems.append(f"Field '{f.key}' has a condition without a target field")
                continue
            if condition.field_key == f.key:
                problems.append(f"Field '{f.key}' has a condition referencing itself")
            elif condition.field_key not in keys:
                problems.append(
                    f"Field '{f.key}' has a condition referencing "
                    f"non-existent field '{condition.field_key}'"
                )
            if condition.needs_value() and condition.value is None:
                problems.append(
                    f"Field '{f.key}' has a '{condition.operator.value}' condition without a value"
                )

    return problems


def check_schema(definition: FormDefinition) -> None:
    """Raise SchemaError if the definition has structural problems."""
    problems = find_schema_problems(definition)
    if problems:
        raise SchemaError(problems)
