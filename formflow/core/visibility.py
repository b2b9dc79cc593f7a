"""
Deterministic visibility evaluator for form fields.

Visibility is a pure function of the current field values: it never
looks at whether other fields are visible, so cycles in the condition
graph cannot cause non-termination.
"""

import logging
from typing import Any, Mapping

from formflow.core.schema import ConditionOperator, FieldCondition, FormField
from formflow.core.utils import is_empty, loose_equals, to_number

logger = logging.getLogger(__name__)


def is_field_visible(field: FormField, values: Mapping[str, Any]) -> bool:
    """Determine if a field should be visible given the current values.

    Args:
        field: The form field to evaluate.
        values: Current field values keyed by field key.

    Returns:
        True if the field should be visible, False otherwise.
    """
    return evaluate_conditions(field.conditions, values)


def evaluate_conditions(
    conditions: list[FieldCondition] | None,
    values: Mapping[str, Any],
) -> bool:
    """Evaluate a list of conditions with AND logic.

    No conditions means always visible.
    """
    if not conditions:
        return True

    return all(evaluate_condition(condition, values) for condition in conditions)


def evaluate_condition(condition: FieldCondition, values: Mapping[str, Any]) -> bool:
    """Evaluate a single condition against the current values.

    A condition referencing a key that is not in `values` is False.
    """
    if condition.field_key not in values:
        logger.debug("Condition references unknown field '%s'", condition.field_key)
        return False

    field_value = values[condition.field_key]
    expected = condition.value

    match condition.operator:
        case ConditionOperator.EQUALS:
            return loose_equals(field_value, expected)

        case ConditionOperator.NOT_EQUALS:
            return not loose_equals(field_value, expected)

        case ConditionOperator.CONTAINS:
            if isinstance(field_value, str) and isinstance(expected, str):
                return expected.lower() in field_value.lower()
            return False

        case ConditionOperator.GREATER_THAN:
            return to_number(field_value) > to_number(expected)

        case ConditionOperator.LESS_THAN:
            return to_number(field_value) < to_number(expected)

        case ConditionOperator.IS_EMPTY:
            return is_empty(field_value)

        case ConditionOperator.IS_NOT_EMPTY:
            return not is_empty(field_value)

    return False
